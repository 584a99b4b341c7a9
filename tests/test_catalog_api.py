from barberhub.auth import create_access_token
from barberhub.models import Profile
from barberhub.shared.enums import ProfileRole
from conftest import auth_headers


def bearer(user_id):
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


def onboarding_payload(slug="corte-fino"):
    return {
        "name": "Corte Fino",
        "slug": slug,
        "owner_name": "Rafael Costa",
        "opening_hours": {
            "monday": {"open": "10:00", "close": "19:00"},
            "sunday": {"closed": True},
        },
    }


def test_onboarding_creates_barbershop_and_admin_profile(db, client):
    response = client.post("/barbershops", json=onboarding_payload(), headers=bearer("owner-1"))

    assert response.status_code == 201
    body = response.json()
    assert body["slug"] == "corte-fino"
    assert body["opening_hours"]["monday"]["open"] == "10:00"
    profile = db.query(Profile).filter(Profile.user_id == "owner-1").one()
    assert profile.role == ProfileRole.ADMIN
    assert profile.barbershop_id == body["id"]

    mine = client.get("/barbershops/me", headers=bearer("owner-1"))
    assert mine.json()["id"] == body["id"]


def test_taken_slug_is_a_conflict(client):
    client.post("/barbershops", json=onboarding_payload(), headers=bearer("owner-1"))
    response = client.post("/barbershops", json=onboarding_payload(), headers=bearer("owner-2"))
    assert response.status_code == 409


def test_user_cannot_onboard_twice(client):
    client.post("/barbershops", json=onboarding_payload("primeira"), headers=bearer("owner-1"))
    response = client.post("/barbershops", json=onboarding_payload("segunda"), headers=bearer("owner-1"))
    assert response.status_code == 409


def test_invalid_slug_is_rejected(client):
    response = client.post("/barbershops", json=onboarding_payload("Corte Fino!"), headers=bearer("owner-1"))
    assert response.status_code == 422


def test_unknown_weekday_is_rejected(client):
    payload = onboarding_payload()
    payload["opening_hours"]["funday"] = {"open": "09:00", "close": "10:00"}
    response = client.post("/barbershops", json=payload, headers=bearer("owner-1"))
    assert response.status_code == 422


def test_token_without_profile_cannot_read_a_barbershop(client, shop):
    response = client.get("/barbershops/me", headers=bearer("nobody"))
    assert response.status_code == 403


def test_only_admins_add_staff(client, admin, barber):
    payload = {"user_id": "user-new", "full_name": "Diego Alves", "commission_rate": "35"}

    denied = client.post("/staff", json=payload, headers=auth_headers(barber))
    assert denied.status_code == 403

    created = client.post("/staff", json=payload, headers=auth_headers(admin))
    assert created.status_code == 201
    assert created.json()["role"] == "barber"

    duplicate = client.post("/staff", json=payload, headers=auth_headers(admin))
    assert duplicate.status_code == 409


def test_client_phone_is_normalized_and_searchable(client, receptionist):
    headers = auth_headers(receptionist)
    created = client.post(
        "/clients", json={"name": "Lucas Martins", "phone": "+55 (11) 98765-4321"}, headers=headers
    )
    assert created.status_code == 201
    assert created.json()["phone"] == "11987654321"

    by_name = client.get("/clients?search=lucas", headers=headers)
    assert [c["id"] for c in by_name.json()] == [created.json()["id"]]

    by_phone = client.get("/clients?search=98765", headers=headers)
    assert len(by_phone.json()) == 1


def test_invalid_client_phone_is_rejected(client, receptionist):
    response = client.post(
        "/clients", json={"name": "Lucas", "phone": "12345"}, headers=auth_headers(receptionist)
    )
    assert response.status_code == 422


def test_service_catalog_update(client, admin, haircut):
    response = client.patch(
        f"/services/{haircut.id}", json={"price": "55.00"}, headers=auth_headers(admin)
    )
    assert response.status_code == 200
    assert response.json()["price"] == "55.00"
