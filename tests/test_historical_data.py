import random
from datetime import date, timedelta

import pytest
from fastapi import HTTPException

from barberhub.cache import day_grid_key
from barberhub.models import Appointment, CashRegister, Client, Command, Sale
from barberhub.services.historical_data import GeneratorConfig, HistoricalDataGenerator
from barberhub.shared.enums import AppointmentSource, AppointmentStatus
from conftest import auth_headers

TODAY = date(2030, 3, 1)


def config(shop, **overrides):
    values = dict(
        barbershop_id=shop.id,
        clients_to_create=6,
        appointments_to_create=24,
        start_date=date(2030, 1, 1),
        end_date=date(2030, 3, 31),
    )
    values.update(overrides)
    return GeneratorConfig(**values)


@pytest.fixture
def stocked(shop, barber, haircut, beard, pomade):
    return shop


def generator(db, seed=7):
    return HistoricalDataGenerator(db, rng=random.Random(seed), today=TODAY)


def test_run_reports_each_phase(db, stocked):
    report = generator(db).run(config(stocked))

    assert [r["phase"] for r in report["results"]] == [
        "clients",
        "historical_appointments",
        "future_appointments",
        "commands_sales",
    ]
    assert report["results"][0]["recordsCreated"] == 6
    assert report["summary"]["totalRecords"] == sum(r["recordsCreated"] for r in report["results"])
    assert report["summary"]["removedRecords"] == 0


def test_generated_rows_are_marked_and_dated(db, stocked):
    generator(db).run(config(stocked))

    clients = db.query(Client).all()
    assert len(clients) == 6
    assert all(c.is_generated for c in clients)

    appointments = db.query(Appointment).all()
    assert 0 < len(appointments) <= 24
    assert all(a.source == AppointmentSource.GENERATOR for a in appointments)
    for appointment in appointments:
        if appointment.status == AppointmentStatus.SCHEDULED:
            assert appointment.appointment_date > TODAY
        else:
            assert appointment.appointment_date < TODAY


def test_completed_visits_are_closed_into_backdated_sales(db, stocked):
    generator(db).run(config(stocked))

    completed = db.query(Appointment).filter(Appointment.status == AppointmentStatus.COMPLETED).all()
    sales = db.query(Sale).all()
    assert len(sales) == len(completed)
    by_command = {c.id: c for c in db.query(Command).all()}
    for sale in sales:
        appointment = db.get(Appointment, by_command[sale.command_id].appointment_id)
        assert sale.created_at.date() == appointment.appointment_date
        assert sale.final_amount >= appointment.price
    assert db.query(CashRegister).count() == 0


def test_generated_appointments_never_overlap(db, stocked):
    generator(db).run(config(stocked, clients_to_create=10, appointments_to_create=60))

    active = db.query(Appointment).filter(Appointment.status != AppointmentStatus.CANCELLED).all()
    seen = {}
    for appointment in active:
        key = (appointment.barber_id, appointment.appointment_date)
        for other in seen.get(key, []):
            assert not (appointment.start_time < other.end_time and other.start_time < appointment.end_time)
        seen.setdefault(key, []).append(appointment)


def test_same_seed_reproduces_the_same_volume(db, stocked):
    first = generator(db, seed=11).run(config(stocked))
    second = generator(db, seed=11).run(config(stocked, preserve_existing=False))

    assert second["summary"]["removedRecords"] > 0
    assert second["summary"]["totalRecords"] == first["summary"]["totalRecords"]
    assert db.query(Client).count() == 6


def test_remove_generated_keeps_real_data(db, stocked, customer):
    generator(db).run(config(stocked))

    removed = generator(db).remove_generated(stocked.id)

    assert removed > 0
    assert [c.id for c in db.query(Client).all()] == [customer.id]
    assert db.query(Appointment).count() == 0
    assert db.query(Sale).count() == 0


def test_generated_days_drop_their_cached_grids(db, stocked, redis_cache):
    settings = config(stocked)
    day = settings.start_date
    while day <= settings.end_date:
        redis_cache.store[day_grid_key(stocked.id, day)] = "{}"
        day += timedelta(days=1)

    generator(db).run(settings)

    touched = {a.appointment_date for a in db.query(Appointment).all()}
    assert touched
    assert all(day_grid_key(stocked.id, d) not in redis_cache.store for d in touched)

    for d in touched:
        redis_cache.store[day_grid_key(stocked.id, d)] = "{}"
    generator(db).remove_generated(stocked.id)

    assert all(day_grid_key(stocked.id, d) not in redis_cache.store for d in touched)


def test_generator_needs_barbers_and_services(db, shop, haircut):
    with pytest.raises(HTTPException) as excinfo:
        generator(db).run(config(shop))
    assert excinfo.value.status_code == 400


def test_admin_endpoint_validates_the_date_range(client, stocked, admin):
    response = client.post(
        "/admin/historical-data",
        json={
            "config": {
                "barbershopId": stocked.id,
                "clientsToCreate": 2,
                "appointmentsToCreate": 4,
                "startDate": "2030-02-01",
                "endDate": "2030-01-01",
            }
        },
        headers=auth_headers(admin),
    )
    assert response.status_code == 422


def test_admin_endpoint_is_scoped_to_own_barbershop(client, stocked, admin):
    response = client.post(
        "/admin/historical-data",
        json={
            "config": {
                "barbershopId": stocked.id + 1,
                "clientsToCreate": 2,
                "appointmentsToCreate": 4,
                "startDate": "2030-01-01",
                "endDate": "2030-02-01",
            }
        },
        headers=auth_headers(admin),
    )
    assert response.status_code == 403


def test_admin_endpoint_echoes_its_config(client, stocked, admin):
    response = client.post(
        "/admin/historical-data",
        json={
            "config": {
                "barbershopId": stocked.id,
                "clientsToCreate": 2,
                "appointmentsToCreate": 4,
                "startDate": "2029-01-01",
                "endDate": "2029-03-01",
                "seed": 3,
            }
        },
        headers=auth_headers(admin),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["testConfig"]["clientsToCreate"] == 2
    assert len(body["results"]) == 4
