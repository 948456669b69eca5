"""
Test cases for address management and the single-default rule.
"""
import pytest

from conftest import PREFIX, bearer, login_token, register

HOME = {"street": "1 Main St", "city": "Lagos", "state": "Lagos", "postalCode": "100001"}
WORK = {"street": "2 Broad St", "city": "Abuja", "state": "FCT", "postalCode": "900001", "country": "Nigeria"}
CABIN = {"street": "3 Hill Rd", "city": "Jos", "state": "Plateau", "postalCode": "930001", "country": "Ghana"}


def defaults(addresses):
    return [a["id"] for a in addresses if a["isDefault"]]


async def add(client, token, body):
    response = await client.post(f"{PREFIX}/address", headers=bearer(token), json=body)
    assert response.status_code == 201, response.text
    return response.json()["data"]


async def addresses_of(client, token):
    response = await client.get(f"{PREFIX}/profile", headers=bearer(token))
    return response.json()["data"]["user"]["addresses"]


@pytest.mark.asyncio
async def test_first_address_becomes_default(client, alice_token):
    data = await add(client, alice_token, HOME)

    assert data["address"]["isDefault"] is True
    assert data["address"]["country"] == "Nigeria"
    assert data["address"]["postalCode"] == "100001"
    assert defaults(data["user"]["addresses"]) == [data["address"]["id"]]


@pytest.mark.asyncio
async def test_second_address_is_not_default_unless_asked(client, alice_token):
    home = (await add(client, alice_token, HOME))["address"]
    work = (await add(client, alice_token, WORK))["address"]

    assert work["isDefault"] is False
    assert defaults(await addresses_of(client, alice_token)) == [home["id"]]


@pytest.mark.asyncio
async def test_new_default_address_unsets_previous(client, alice_token):
    await add(client, alice_token, HOME)
    data = await add(client, alice_token, {**WORK, "isDefault": True})

    assert defaults(data["user"]["addresses"]) == [data["address"]["id"]]


@pytest.mark.asyncio
async def test_add_address_requires_fields(client, alice_token):
    response = await client.post(
        f"{PREFIX}/address", headers=bearer(alice_token), json={"street": "1 Main St"}
    )
    assert response.status_code == 400
    assert response.json()["status"] == "error"


@pytest.mark.asyncio
async def test_update_address_fields(client, alice_token):
    home = (await add(client, alice_token, HOME))["address"]

    response = await client.patch(
        f"{PREFIX}/address/{home['id']}", headers=bearer(alice_token), json={"city": "Ibadan"}
    )

    assert response.status_code == 200
    address = response.json()["data"]["address"]
    assert address["city"] == "Ibadan"
    assert address["street"] == "1 Main St"
    assert address["isDefault"] is True


@pytest.mark.asyncio
async def test_update_address_to_default(client, alice_token):
    await add(client, alice_token, HOME)
    work = (await add(client, alice_token, WORK))["address"]

    response = await client.patch(
        f"{PREFIX}/address/{work['id']}", headers=bearer(alice_token), json={"isDefault": True}
    )

    assert response.status_code == 200
    assert defaults(response.json()["data"]["user"]["addresses"]) == [work["id"]]


@pytest.mark.asyncio
async def test_unsetting_default_promotes_first_other(client, alice_token):
    home = (await add(client, alice_token, HOME))["address"]
    work = (await add(client, alice_token, WORK))["address"]

    response = await client.patch(
        f"{PREFIX}/address/{home['id']}", headers=bearer(alice_token), json={"isDefault": False}
    )

    assert defaults(response.json()["data"]["user"]["addresses"]) == [work["id"]]


@pytest.mark.asyncio
async def test_only_address_stays_default(client, alice_token):
    home = (await add(client, alice_token, HOME))["address"]

    response = await client.patch(
        f"{PREFIX}/address/{home['id']}", headers=bearer(alice_token), json={"isDefault": False}
    )

    assert response.json()["data"]["address"]["isDefault"] is True


@pytest.mark.asyncio
async def test_update_address_rejects_unknown_fields(client, alice_token):
    home = (await add(client, alice_token, HOME))["address"]

    response = await client.patch(
        f"{PREFIX}/address/{home['id']}", headers=bearer(alice_token), json={"id": "other"}
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_deleting_default_promotes_first_remaining(client, alice_token):
    home = (await add(client, alice_token, HOME))["address"]
    work = (await add(client, alice_token, WORK))["address"]
    await add(client, alice_token, CABIN)

    response = await client.delete(f"{PREFIX}/address/{home['id']}", headers=bearer(alice_token))

    assert response.status_code == 200
    remaining = response.json()["data"]["user"]["addresses"]
    assert [a["id"] for a in remaining][0] == work["id"]
    assert defaults(remaining) == [work["id"]]


@pytest.mark.asyncio
async def test_deleting_last_address_leaves_empty_list(client, alice_token):
    home = (await add(client, alice_token, HOME))["address"]

    response = await client.delete(f"{PREFIX}/address/{home['id']}", headers=bearer(alice_token))

    assert response.json()["data"]["user"]["addresses"] == []


@pytest.mark.asyncio
async def test_unknown_address_is_not_found(client, alice_token):
    patch = await client.patch(f"{PREFIX}/address/missing", headers=bearer(alice_token), json={"city": "X"})
    delete = await client.delete(f"{PREFIX}/address/missing", headers=bearer(alice_token))

    assert patch.status_code == delete.status_code == 404
    assert delete.json()["message"] == "Address not found"


@pytest.mark.asyncio
async def test_cannot_touch_another_users_address(client, alice_token):
    home = (await add(client, alice_token, HOME))["address"]
    await register(client, username="bob", email="bob@x.com", phone="+15550000000")
    bob_token = await login_token(client, email="bob@x.com")

    response = await client.delete(f"{PREFIX}/address/{home['id']}", headers=bearer(bob_token))

    assert response.status_code == 404
    assert len(await addresses_of(client, alice_token)) == 1


@pytest.mark.asyncio
async def test_exactly_one_default_after_mixed_operations(client, alice_token):
    ids = []
    for body in (HOME, WORK, CABIN, {**HOME, "isDefault": True}):
        ids.append((await add(client, alice_token, body))["address"]["id"])
        assert len(defaults(await addresses_of(client, alice_token))) == 1

    steps = [
        ("patch", ids[1], {"isDefault": True}),
        ("delete", ids[1], None),
        ("patch", ids[0], {"isDefault": False}),
        ("delete", ids[3], None),
        ("patch", ids[2], {"isDefault": True}),
        ("delete", ids[2], None),
    ]
    for action, address_id, body in steps:
        url = f"{PREFIX}/address/{address_id}"
        if action == "patch":
            response = await client.patch(url, headers=bearer(alice_token), json=body)
        else:
            response = await client.delete(url, headers=bearer(alice_token))
        assert response.status_code == 200, response.text
        addresses = await addresses_of(client, alice_token)
        if addresses:
            assert len(defaults(addresses)) == 1

    assert [a["id"] for a in await addresses_of(client, alice_token)] == [ids[0]]


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    {**HOME, "postal_code": "100001"},
    {**HOME, "is_default": True},
    {**HOME, "userId": "someone-else"},
    {**HOME, "country": ""},
])
async def test_add_address_rejects_unknown_names_and_empty_country(client, alice_token, body):
    response = await client.post(f"{PREFIX}/address", headers=bearer(alice_token), json=body)

    assert response.status_code == 400
    assert response.json()["status"] == "error"
    assert await addresses_of(client, alice_token) == []


@pytest.mark.asyncio
async def test_update_address_rejects_snake_case_names(client, alice_token):
    await add(client, alice_token, HOME)
    work = (await add(client, alice_token, WORK))["address"]

    response = await client.patch(
        f"{PREFIX}/address/{work['id']}", headers=bearer(alice_token), json={"is_default": True}
    )

    assert response.status_code == 400
    assert defaults(await addresses_of(client, alice_token)) != [work["id"]]
