from app.models.category import DEFAULT_CATEGORIES


def test_seed_defaults_once(client, auth_headers):
    response = client.post("/api/categories/defaults", headers=auth_headers)
    assert response.status_code == 201
    assert len(response.json()["data"]["categories"]) == len(DEFAULT_CATEGORIES)

    again = client.post("/api/categories/defaults", headers=auth_headers)
    assert again.status_code == 400
    assert again.json()["message"] == "User already has categories"

    listed = client.get("/api/categories/", headers=auth_headers).json()["data"]["categories"]
    assert len(listed) == len(DEFAULT_CATEGORIES)


def test_seed_defaults_refused_when_user_has_any_category(client, auth_headers, make_category):
    make_category(auth_headers)
    response = client.post("/api/categories/defaults", headers=auth_headers)
    assert response.status_code == 400


def test_defaults_are_immutable(client, auth_headers):
    client.post("/api/categories/defaults", headers=auth_headers)
    category = client.get("/api/categories/", headers=auth_headers).json()["data"]["categories"][0]
    path = f"/api/categories/{category['category_id']}"

    assert client.put(path, json={"name": "Renamed"}, headers=auth_headers).status_code == 400
    assert client.delete(path, headers=auth_headers).status_code == 400


def test_create_applies_display_defaults(auth_headers, make_category):
    category = make_category(auth_headers, name="  Coffee  ")
    assert category["name"] == "Coffee"
    assert category["icon"] == "💰"
    assert category["color"] == "#3B82F6"
    assert category["is_default"] is False


def test_name_unique_per_user_case_insensitive(client, auth_headers, make_category, register, login):
    make_category(auth_headers, name="Coffee")
    duplicate = client.post("/api/categories/", json={"name": "coffee", "type": "expense"}, headers=auth_headers)
    assert duplicate.status_code == 400
    assert duplicate.json()["message"] == "Category with this name already exists"

    # Another user may use the same name
    register(email="sam@mailbox.org", name="Sam")
    make_category(login(email="sam@mailbox.org"), name="Coffee")


def test_list_filters_by_type(client, auth_headers, make_category):
    make_category(auth_headers, name="Salary", type="income")
    make_category(auth_headers, name="Rent", type="expense")
    response = client.get("/api/categories/", params={"type": "income"}, headers=auth_headers)
    assert [c["name"] for c in response.json()["data"]["categories"]] == ["Salary"]


def test_rename_moves_uniqueness(client, auth_headers, make_category):
    coffee = make_category(auth_headers, name="Coffee")
    make_category(auth_headers, name="Tea")
    path = f"/api/categories/{coffee['category_id']}"

    assert client.put(path, json={"name": "Tea"}, headers=auth_headers).status_code == 400

    renamed = client.put(path, json={"name": "Espresso", "color": "#111111"}, headers=auth_headers)
    assert renamed.status_code == 200
    assert renamed.json()["data"]["category"]["name"] == "Espresso"
    assert renamed.json()["data"]["category"]["color"] == "#111111"

    # The old name is free again
    make_category(auth_headers, name="Coffee")


def test_update_requires_fields(client, auth_headers, make_category):
    category = make_category(auth_headers)
    response = client.put(f"/api/categories/{category['category_id']}", json={}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["message"] == "No fields to update"


def test_soft_delete_hides_category_and_frees_name(client, auth_headers, make_category):
    category = make_category(auth_headers, name="Coffee")
    path = f"/api/categories/{category['category_id']}"

    assert client.delete(path, headers=auth_headers).status_code == 200
    assert client.get(path, headers=auth_headers).status_code == 404
    assert client.get("/api/categories/", headers=auth_headers).json()["data"]["categories"] == []

    make_category(auth_headers, name="Coffee")


def test_other_users_category_is_not_found(client, auth_headers, make_category, register, login):
    category = make_category(auth_headers)
    register(email="sam@mailbox.org", name="Sam")
    other = login(email="sam@mailbox.org")
    response = client.get(f"/api/categories/{category['category_id']}", headers=other)
    assert response.status_code == 404
