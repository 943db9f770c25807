# Overview: Shared request builders for the backend tests.


def ramen_item(ramen, quantity=1, broth="Light", eggs=0):
    """Cart payload entry for the ramen fixture."""
    group = ramen.option_groups[0]
    option = next(o for o in group.options if o.name == broth)
    item = {"product_id": ramen.id, "quantity": quantity, "option_ids": [option.id]}
    if eggs:
        item["addons"] = [{"addon_id": ramen.addons[0].id, "quantity": eggs}]
    return item


def actor_headers(user, location=None) -> dict:
    """Identity headers the register sends with each request."""
    headers = {"X-User-Id": str(user.id)}
    if location is not None:
        headers["X-Location-Id"] = str(location.id)
    return headers
