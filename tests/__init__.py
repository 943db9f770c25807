# KomePOS Black-Box API Test Suite
#
# This package contains:
# - API tests (pytest + httpx) driving the Flask app over HTTP
#
# Unit and service tests live in backend/tests.
# Run with: python -m pytest tests -m smoke
