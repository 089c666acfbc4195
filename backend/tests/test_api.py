"""End-to-end tests against the FastAPI app and an in-memory database"""


async def create_item(client, owner, **fields):
    body = {"name": "Kindle Paperwhite", "desire_score": 7, "category_tags": ["books"]}
    body.update(fields)
    response = await client.post(f"/wishlists/{owner['id']}/items", json=body, headers=owner["headers"])
    assert response.status_code == 201, response.text
    return response.json()


async def test_health(client):
    response = await client.get("/health")
    assert response.json() == {"status": "healthy"}


async def test_register_login_and_me(client):
    response = await client.post("/auth/register", json={"email": "a@example.com", "password": "short"})
    assert response.status_code == 400

    response = await client.post("/auth/register", json={"email": "a@example.com", "password": "long enough"})
    assert response.status_code == 201

    response = await client.post("/auth/login", json={"email": "A@example.com", "password": "long enough"})
    assert response.status_code == 200
    tokens = response.json()

    me = await client.get("/auth/me", headers={"Authorization": f"Bearer {tokens['access_token']}"})
    assert me.json()["email"] == "a@example.com"

    refreshed = await client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert refreshed.status_code == 200

    assert (await client.get("/auth/me")).status_code == 401


async def test_owner_gets_default_collection(client, users):
    owner = users["owner"]
    response = await client.get(f"/wishlists/{owner['id']}/collections")

    assert response.status_code == 200
    collections = response.json()
    assert len(collections) == 1
    assert collections[0]["is_default"]


async def test_unknown_wishlist(client):
    response = await client.get("/wishlists/999/collections")
    assert response.status_code == 404
    assert response.json()["code"] == "NotFound"

    listing = await client.get("/wishlists/999/items")
    assert listing.status_code == 200
    assert listing.json()["error"]


async def test_item_crud_and_visibility(client, users):
    owner, friend = users["owner"], users["friend"]
    public = await create_item(client, owner)
    private = await create_item(client, owner, name="Surprise", is_private=True)
    base = f"/wishlists/{owner['id']}/items"

    listing = (await client.get(base)).json()
    assert [i["id"] for i in listing["items"]] == [public["id"]]
    assert listing["total_count"] == 1

    listing = (await client.get(base, headers=owner["headers"])).json()
    assert listing["total_count"] == 2

    response = await client.get(f"{base}/{private['id']}", headers=friend["headers"])
    assert response.status_code == 404

    response = await client.patch(f"{base}/{public['id']}", json={"desire_score": 11}, headers=owner["headers"])
    assert response.status_code == 422

    response = await client.patch(f"{base}/{public['id']}", json={"desire_score": 9}, headers=owner["headers"])
    assert response.json()["desire_score"] == 9

    response = await client.patch(f"{base}/{public['id']}", json={"name": "Stolen"}, headers=friend["headers"])
    assert response.status_code == 403

    response = await client.delete(f"{base}/{private['id']}", headers=owner["headers"])
    assert response.status_code == 204
    response = await client.get(f"{base}/{private['id']}", headers=owner["headers"])
    assert response.status_code == 404


async def test_search_and_filters(client, users):
    owner = users["owner"]
    await create_item(client, owner, name='MacBook Pro 16" M3', desire_score=9, category_tags=["tech"])
    kindle = await create_item(client, owner)
    base = f"/wishlists/{owner['id']}/items"

    result = (await client.get(base, params={"search": "kindle"})).json()
    assert [i["id"] for i in result["items"]] == [kindle["id"]]
    assert result["items"][0]["search_score"] >= 10

    result = (await client.get(base, params={"min_score": 8})).json()
    assert [i["name"] for i in result["items"]] == ['MacBook Pro 16" M3']

    result = (await client.get(base, params={"sort": "name"})).json()
    assert [i["name"] for i in result["items"]] == ["Kindle Paperwhite", 'MacBook Pro 16" M3']

    response = await client.get(base, params={"status": "lost"})
    assert response.status_code == 422


async def test_claim_flow(client, users):
    owner, friend, other = users["owner"], users["friend"], users["other"]
    item = await create_item(client, owner)
    url = f"/wishlists/{owner['id']}/items/{item['id']}"

    response = await client.post(f"{url}/claim", headers=owner["headers"])
    assert response.status_code == 400
    assert response.json()["code"] == "InvalidClaim"

    response = await client.post(f"{url}/claim")
    assert response.status_code == 403

    response = await client.post(f"{url}/claim", headers=friend["headers"])
    assert response.status_code == 200
    assert response.json()["state"] == "Claimed"

    response = await client.post(f"{url}/claim", headers=other["headers"])
    assert response.status_code == 409
    assert response.json()["code"] == "AlreadyClaimed"

    owner_view = (await client.get(url, headers=owner["headers"])).json()
    assert owner_view["reserved"] is True
    assert "claimant_id" not in owner_view

    own_view = (await client.get(url, headers=friend["headers"])).json()
    assert own_view["claimant_id"] == friend["id"]
    assert own_view["can_unclaim"] is True

    mine = (await client.get(f"/wishlists/{owner['id']}/claims/mine", headers=friend["headers"])).json()
    assert [i["id"] for i in mine] == [item["id"]]

    response = await client.delete(f"{url}/claim", headers=other["headers"])
    assert response.status_code == 403

    response = await client.delete(f"{url}/claim", headers=friend["headers"])
    assert response.json()["state"] == "Available"

    summary = (await client.get(f"/wishlists/{owner['id']}/summary", headers=owner["headers"])).json()
    assert summary["claimed_items"] == 0


async def test_claim_survives_reload(client, users):
    from wishlist.services.wishlist_service import get_wishlist_service

    owner, friend = users["owner"], users["friend"]
    item = await create_item(client, owner)
    url = f"/wishlists/{owner['id']}/items/{item['id']}"
    await client.post(f"{url}/claim", headers=friend["headers"])

    await get_wishlist_service().reload(owner["id"])

    own_view = (await client.get(url, headers=friend["headers"])).json()
    assert own_view["claimant_id"] == friend["id"]


async def test_bulk_partial_failure(client, users):
    owner, friend = users["owner"], users["friend"]
    first = await create_item(client, owner)
    second = await create_item(client, owner, name="Hiking boots")
    url = f"/wishlists/{owner['id']}/items/bulk"
    body = {"kind": "delete", "item_ids": [first["id"], "missing", second["id"]]}

    response = await client.post(url, json=body, headers=friend["headers"])
    assert response.status_code == 403

    response = await client.post(url, json=body, headers=owner["headers"])
    assert response.status_code == 207
    report = response.json()
    assert report["succeededIds"] == [first["id"], second["id"]]
    assert report["failedIds"][0]["reason"] == "NotFound"
    assert report["counts"]["all"] == 0


async def test_collections_api(client, users):
    owner = users["owner"]
    base = f"/wishlists/{owner['id']}/collections"

    response = await client.post(base, json={"name": "Books", "icon": "📚"}, headers=owner["headers"])
    assert response.status_code == 201
    books = response.json()

    response = await client.post(base, json={"name": "BOOKS"}, headers=owner["headers"])
    assert response.status_code == 422

    item = await create_item(client, owner, collection_ids=[books["id"]])
    counts = (await client.get(f"{base}/counts")).json()
    assert counts[books["id"]] == 1
    assert counts["all"] == 1

    response = await client.patch(f"{base}/{books['id']}", json={"name": "Reading"}, headers=owner["headers"])
    assert response.json()["name"] == "Reading"

    response = await client.delete(f"{base}/{books['id']}", headers=owner["headers"])
    assert response.status_code == 204

    view = (await client.get(f"/wishlists/{owner['id']}/items/{item['id']}", headers=owner["headers"])).json()
    assert view["collection_ids"] == []


async def test_graphql_listing_and_claim(client, users):
    owner, friend = users["owner"], users["friend"]
    item = await create_item(client, owner)

    query = """
        query Items($ownerId: String!) {
            wishlistItems(ownerId: $ownerId, search: "kindle") {
                items { id reserved perspective }
                filteredCount
                error
            }
        }
    """
    response = await client.post("/graphql", json={"query": query, "variables": {"ownerId": owner["id"]}})
    data = response.json()["data"]["wishlistItems"]
    assert data["filteredCount"] == 1
    assert data["items"][0]["id"] == item["id"]

    mutation = """
        mutation Claim($ownerId: String!, $itemId: String!) {
            claimItem(ownerId: $ownerId, itemId: $itemId) { success code }
        }
    """
    variables = {"ownerId": owner["id"], "itemId": item["id"]}
    response = await client.post("/graphql", json={"query": mutation, "variables": variables},
                                 headers=friend["headers"])
    assert response.json()["data"]["claimItem"] == {"success": True, "code": None}

    response = await client.post("/graphql", json={"query": mutation, "variables": variables},
                                 headers=users["other"]["headers"])
    assert response.json()["data"]["claimItem"] == {"success": False, "code": "AlreadyClaimed"}
