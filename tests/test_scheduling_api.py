from barberhub.models import Appointment, AuditLog
from barberhub.shared.enums import AppointmentStatus
from conftest import auth_headers

MONDAY = "2030-01-07"
SUNDAY = "2030-01-13"


def book(client, profile, customer, barber, service, start="10:00", day=MONDAY):
    return client.post(
        "/appointments",
        json={
            "client_id": customer.id,
            "barber_id": barber.id,
            "service_id": service.id,
            "appointment_date": day,
            "start_time": start,
        },
        headers=auth_headers(profile),
    )


def test_booking_derives_end_time_and_price(client, receptionist, customer, barber, haircut):
    response = book(client, receptionist, customer, barber, haircut)

    assert response.status_code == 201
    body = response.json()
    assert body["start_time"] == "10:00:00"
    assert body["end_time"] == "10:30:00"
    assert body["price"] == "50.00"
    assert body["status"] == "scheduled"
    assert body["barber_name"] == "Carlos Lima"


def test_overlapping_booking_is_rejected_with_conflict(client, receptionist, customer, barber, haircut):
    first = book(client, receptionist, customer, barber, haircut, start="10:00")
    clash = book(client, receptionist, customer, barber, haircut, start="10:15")

    assert clash.status_code == 409
    assert clash.json()["detail"]["conflicting_appointment_id"] == first.json()["id"]


def test_back_to_back_booking_is_allowed(client, receptionist, customer, barber, haircut):
    book(client, receptionist, customer, barber, haircut, start="10:00")
    response = book(client, receptionist, customer, barber, haircut, start="10:30")
    assert response.status_code == 201


def test_cancelled_appointment_frees_its_slot(client, receptionist, customer, barber, haircut):
    first = book(client, receptionist, customer, barber, haircut, start="10:00").json()
    cancelled = client.post(
        f"/appointments/{first['id']}/cancel",
        json={"reason": "Cliente desmarcou"},
        headers=auth_headers(receptionist),
    )
    assert cancelled.json()["status"] == "cancelled"

    response = book(client, receptionist, customer, barber, haircut, start="10:00")
    assert response.status_code == 201


def test_booking_on_a_closed_day_is_rejected(client, receptionist, customer, barber, haircut):
    response = book(client, receptionist, customer, barber, haircut, day=SUNDAY)
    assert response.status_code == 400


def test_booking_past_closing_time_is_rejected(client, receptionist, customer, barber, haircut):
    response = book(client, receptionist, customer, barber, haircut, start="17:45")
    assert response.status_code == 400


def test_start_between_grid_labels_is_rejected(client, receptionist, customer, barber, haircut):
    response = book(client, receptionist, customer, barber, haircut, start="10:05")
    assert response.status_code == 400

    appointment_id = book(client, receptionist, customer, barber, haircut, start="10:00").json()["id"]
    moved = client.patch(
        f"/appointments/{appointment_id}", json={"start_time": "10:20"}, headers=auth_headers(receptionist)
    )
    assert moved.status_code == 400


def test_grid_marks_start_and_covered_cells(client, receptionist, customer, barber, haircut):
    appointment_id = book(client, receptionist, customer, barber, haircut, start="09:00").json()["id"]

    response = client.get(f"/appointments/grid?date={MONDAY}", headers=auth_headers(receptionist))

    assert response.status_code == 200
    grid = response.json()
    assert len(grid["slots"]) == 36
    column = next(c for c in grid["columns"] if c["barber_id"] == barber.id)
    cells = {c["time"]: c for c in column["cells"]}
    assert cells["09:00"]["kind"] == "start"
    assert cells["09:00"]["span"] == 2
    assert cells["09:00"]["appointment_id"] == appointment_id
    assert cells["09:15"]["kind"] == "covered"
    assert cells["09:30"]["kind"] == "free"


def test_availability_excludes_booked_times(client, receptionist, customer, barber, haircut):
    book(client, receptionist, customer, barber, haircut, start="09:00")

    response = client.get(
        f"/appointments/availability?barber_id={barber.id}&date={MONDAY}&service_id={haircut.id}",
        headers=auth_headers(receptionist),
    )

    times = response.json()["times"]
    assert "09:00" not in times
    assert "09:15" not in times
    assert "09:30" in times
    assert response.json()["duration_minutes"] == 30


def test_status_transitions_follow_the_lifecycle(client, receptionist, customer, barber, haircut):
    appointment_id = book(client, receptionist, customer, barber, haircut).json()["id"]
    headers = auth_headers(receptionist)

    confirmed = client.post(f"/appointments/{appointment_id}/status", json={"status": "confirmed"}, headers=headers)
    assert confirmed.json()["status"] == "confirmed"
    completed = client.post(f"/appointments/{appointment_id}/status", json={"status": "completed"}, headers=headers)
    assert completed.json()["status"] == "completed"

    reopened = client.post(f"/appointments/{appointment_id}/status", json={"status": "scheduled"}, headers=headers)
    assert reopened.status_code == 400


def test_unknown_status_is_a_validation_error(client, receptionist, customer, barber, haircut):
    appointment_id = book(client, receptionist, customer, barber, haircut).json()["id"]
    response = client.post(
        f"/appointments/{appointment_id}/status", json={"status": "pending"}, headers=auth_headers(receptionist)
    )
    assert response.status_code == 422


def test_reschedule_checks_conflicts_excluding_itself(client, receptionist, customer, barber, haircut):
    first = book(client, receptionist, customer, barber, haircut, start="10:00").json()
    book(client, receptionist, customer, barber, haircut, start="11:00")
    headers = auth_headers(receptionist)

    nudged = client.patch(f"/appointments/{first['id']}", json={"start_time": "10:15"}, headers=headers)
    assert nudged.status_code == 200
    assert nudged.json()["end_time"] == "10:45:00"

    clash = client.patch(f"/appointments/{first['id']}", json={"start_time": "10:45"}, headers=headers)
    assert clash.status_code == 409


def test_permanent_delete_is_admin_only_and_audited(db, client, admin, receptionist, customer, barber, haircut):
    appointment_id = book(client, receptionist, customer, barber, haircut).json()["id"]

    denied = client.delete(f"/appointments/{appointment_id}", headers=auth_headers(receptionist))
    assert denied.status_code == 403

    deleted = client.delete(f"/appointments/{appointment_id}", headers=auth_headers(admin))
    assert deleted.status_code == 200
    assert db.query(Appointment).count() == 0
    audit = db.query(AuditLog).one()
    assert audit.entity_id == appointment_id
    assert audit.details["status"] == AppointmentStatus.SCHEDULED.value


def test_other_tenants_appointments_are_invisible(db, client, receptionist, customer, barber, haircut):
    from barberhub.models import Barbershop, Profile
    from barberhub.shared.enums import ProfileRole

    appointment_id = book(client, receptionist, customer, barber, haircut).json()["id"]
    other = Barbershop(name="Outra", slug="outra")
    db.add(other)
    db.commit()
    stranger = Profile(barbershop_id=other.id, user_id="user-other", full_name="Eva", role=ProfileRole.ADMIN)
    db.add(stranger)
    db.commit()

    response = client.get(f"/appointments/{appointment_id}", headers=auth_headers(stranger))
    assert response.status_code == 404


def test_missing_token_is_unauthorized(client, shop):
    response = client.get(f"/appointments?start={MONDAY}")
    assert response.status_code in (401, 403)


# ============================================================================
# GRID CACHE
# ============================================================================


def grid(client, profile):
    return client.get(f"/appointments/grid?date={MONDAY}", headers=auth_headers(profile)).json()


def test_booking_refreshes_the_cached_grid(client, redis_cache, receptionist, customer, barber, haircut):
    before = grid(client, receptionist)
    assert f"appointments:{barber.barbershop_id}:{MONDAY}" in redis_cache.store
    assert before["appointments"] == []

    book(client, receptionist, customer, barber, haircut, start="09:00")

    assert len(grid(client, receptionist)["appointments"]) == 1


def test_opening_hours_change_refreshes_the_cached_grid(client, redis_cache, admin, receptionist, barber):
    assert len(grid(client, receptionist)["slots"]) == 36

    response = client.patch(
        "/barbershops/me",
        json={"opening_hours": {"monday": {"open": "09:00", "close": "12:00"}}},
        headers=auth_headers(admin),
    )
    assert response.status_code == 200

    assert len(grid(client, receptionist)["slots"]) == 12


def test_new_barber_appears_in_the_cached_grid(client, redis_cache, admin, receptionist, barber):
    columns = len(grid(client, receptionist)["columns"])

    response = client.post(
        "/staff",
        json={"user_id": "user-barber-2", "full_name": "Diego Souza", "role": "barber"},
        headers=auth_headers(admin),
    )
    assert response.status_code == 201

    assert len(grid(client, receptionist)["columns"]) == columns + 1
