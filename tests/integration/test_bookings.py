import pytest

from clinic_booking.db.models import ProfileRole


@pytest.fixture()
def clinic(make_profile, make_doctor, make_service):
    return {
        "customer": make_profile("patient@example.com"),
        "other_customer": make_profile("other@example.com"),
        "admin": make_profile("admin@example.com", role=ProfileRole.ADMIN),
        "doctor": make_doctor(),
        "consultation": make_service(name="Consultation", base_price="120.00", duration_minutes=45),
        "laser": make_service(name="Laser", base_price="100.00", duration_minutes=30),
    }


def _book(client, headers, service, doctor, date, time, **extra):
    payload = {
        "service_id": service.id,
        "doctor_id": doctor.id if doctor is not None else None,
        "date": date,
        "time": time,
        **extra,
    }
    return client.post("/bookings", headers=headers, json=payload)


def test_booking_that_overlaps_confirmed_booking_is_rejected(client, clinic, auth_headers):
    doctor = clinic["doctor"]
    service = clinic["consultation"]
    admin_response = client.post(
        "/admin/bookings",
        headers=auth_headers(clinic["admin"]),
        json={
            "customer_id": clinic["other_customer"].id,
            "service_id": service.id,
            "doctor_id": doctor.id,
            "date": "2025-07-01",
            "time": "14:00",
            "status": "confirmed",
        },
    )
    assert admin_response.status_code == 201
    assert admin_response.json()["booking_end_time"] == "14:45:00"

    headers = auth_headers(clinic["customer"])
    conflict = _book(client, headers, service, doctor, "2025-07-01", "2:00 pm", session_count=1)
    assert conflict.status_code == 409
    body = conflict.json()
    assert body["error"]["code"] == "conflict"
    assert body["detail"] == "Doctor already has a booking in this time slot."

    created = _book(client, headers, service, doctor, "2025-07-01", "3:00 pm", session_count=1)
    assert created.status_code == 201
    data = created.json()
    assert data["booking_date"] == "2025-07-01"
    assert data["booking_time"] == "15:00:00"
    assert data["booking_end_time"] == "15:45:00"
    assert data["unit_price"] == "120.00"
    assert data["discount_percent"] == 0
    assert data["total_amount"] == "120.00"
    assert data["status"] == "pending"
    assert data["source"] == "customer"
    assert data["customer_id"] == clinic["customer"].id


def test_touching_intervals_do_not_conflict(client, clinic, auth_headers):
    headers = auth_headers(clinic["customer"])
    doctor = clinic["doctor"]
    laser = clinic["laser"]

    assert _book(client, headers, laser, doctor, "2025-07-02", "10:00 am").status_code == 201
    overlapping = _book(client, headers, laser, doctor, "2025-07-02", "10:15 am")
    touching = _book(client, headers, laser, doctor, "2025-07-02", "10:30 am")

    assert overlapping.status_code == 409
    assert touching.status_code == 201


def test_bookings_without_doctor_never_conflict(client, clinic, auth_headers):
    headers = auth_headers(clinic["customer"])
    laser = clinic["laser"]

    first = _book(client, headers, laser, None, "2025-07-03", "11:00")
    second = _book(client, headers, laser, None, "2025-07-03", "11:00")

    assert first.status_code == 201
    assert second.status_code == 201
    assert first.json()["doctor_id"] is None


def test_other_doctors_calendars_are_independent(client, clinic, make_doctor, auth_headers):
    headers = auth_headers(clinic["customer"])
    laser = clinic["laser"]
    second_doctor = make_doctor(full_name="Dr. Grace Hopper")

    assert _book(client, headers, laser, clinic["doctor"], "2025-07-03", "11:00").status_code == 201
    assert _book(client, headers, laser, second_doctor, "2025-07-03", "11:00").status_code == 201


def test_package_label_sets_session_count_and_discount(client, clinic, auth_headers):
    response = _book(
        client,
        auth_headers(clinic["customer"]),
        clinic["laser"],
        clinic["doctor"],
        "Mon, 7th July 2025",
        "9:00 am",
        package="3 sessions",
    )

    assert response.status_code == 201
    data = response.json()
    assert data["booking_date"] == "2025-07-07"
    assert data["session_count"] == 3
    assert data["discount_percent"] == 25
    assert data["unit_price"] == "75.00"
    assert data["total_amount"] == "225.00"


def test_customer_cannot_override_prices(client, clinic, auth_headers):
    response = _book(
        client,
        auth_headers(clinic["customer"]),
        clinic["laser"],
        clinic["doctor"],
        "2025-07-08",
        "09:00",
        session_count=1,
        unit_price="1.00",
    )

    assert response.status_code == 201
    assert response.json()["unit_price"] == "100.00"


def test_session_count_must_be_offered_by_service(client, clinic, make_service, auth_headers):
    short_course = make_service(name="Peel", session_options=[1, 3])

    response = _book(
        client,
        auth_headers(clinic["customer"]),
        short_course,
        clinic["doctor"],
        "2025-07-08",
        "09:00",
        session_count=6,
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "validation_error"


def test_oversized_package_is_rejected_rather_than_shrunk(client, clinic, auth_headers):
    response = _book(
        client,
        auth_headers(clinic["customer"]),
        clinic["laser"],
        clinic["doctor"],
        "2025-07-08",
        "09:00",
        package="12 sessions",
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Service 'Laser' is not offered as a 12-session package"


@pytest.mark.parametrize(
    ("date", "time", "detail"),
    [
        ("not a date", "10:00", "Invalid booking date"),
        ("10:00", "10:00", "Invalid booking date"),
        ("June 2025", "10:00", "Invalid booking date"),
        ("8th July", "10:00", "Invalid booking date"),
        ("2025-07-08", "noon", "Invalid booking time"),
        ("2025-07-08", "23:45", "Booking must end on the same day it starts"),
    ],
)
def test_malformed_schedule_is_rejected(client, clinic, auth_headers, date, time, detail):
    response = _book(client, auth_headers(clinic["customer"]), clinic["laser"], clinic["doctor"], date, time)

    assert response.status_code == 400
    assert response.json()["detail"] == detail


def test_incomplete_date_is_not_filled_in(client, clinic, auth_headers):
    headers = auth_headers(clinic["customer"])

    response = _book(client, headers, clinic["laser"], None, "10:00", "10:00")

    assert response.status_code == 400
    assert client.get("/bookings/me", headers=headers).json() == []


def test_unknown_service_and_doctor_are_not_found(client, clinic, auth_headers):
    headers = auth_headers(clinic["customer"])

    missing_service = client.post(
        "/bookings",
        headers=headers,
        json={"service_id": 999, "doctor_id": clinic["doctor"].id, "date": "2025-07-08", "time": "10:00"},
    )
    missing_doctor = client.post(
        "/bookings",
        headers=headers,
        json={"service_id": clinic["laser"].id, "doctor_id": 999, "date": "2025-07-08", "time": "10:00"},
    )

    assert missing_service.status_code == 404
    assert missing_service.json()["detail"] == "Service not found"
    assert missing_doctor.status_code == 404
    assert missing_doctor.json()["error"]["code"] == "not_found"


def test_inactive_doctor_cannot_be_booked(client, clinic, make_doctor, auth_headers):
    retired = make_doctor(full_name="Dr. Retired", is_active=False)

    response = _book(client, auth_headers(clinic["customer"]), clinic["laser"], retired, "2025-07-08", "10:00")

    assert response.status_code == 400
    assert response.json()["detail"] == "Doctor is not accepting bookings"


def test_booking_requires_authentication(client, clinic):
    response = client.post(
        "/bookings",
        json={"service_id": clinic["laser"].id, "date": "2025-07-08", "time": "10:00"},
    )

    assert response.status_code == 401


def test_retry_with_same_idempotency_key_returns_original_booking(client, clinic, auth_headers):
    headers = {**auth_headers(clinic["customer"]), "Idempotency-Key": "confirm-123"}

    first = _book(client, headers, clinic["laser"], clinic["doctor"], "2025-07-09", "10:00 am")
    retry = _book(client, headers, clinic["laser"], clinic["doctor"], "2025-07-09", "10:00")
    reused = _book(client, headers, clinic["laser"], clinic["doctor"], "2025-07-09", "11:00")

    assert first.status_code == 201
    assert retry.status_code == 201
    assert retry.json()["id"] == first.json()["id"]
    assert reused.status_code == 409
    assert reused.json()["detail"] == "Idempotency key already used with another booking"


def test_idempotency_key_reuse_with_another_package_is_rejected(client, clinic, auth_headers):
    headers = {**auth_headers(clinic["customer"]), "Idempotency-Key": "confirm-456"}

    first = _book(client, headers, clinic["laser"], clinic["doctor"], "2025-07-09", "10:00", package="1 session")
    upgraded = _book(client, headers, clinic["laser"], clinic["doctor"], "2025-07-09", "10:00", package="3 sessions")
    replayed = _book(client, headers, clinic["laser"], clinic["doctor"], "2025-07-09", "10:00 am", session_count=1)

    assert first.status_code == 201
    assert upgraded.status_code == 409
    assert upgraded.json()["detail"] == "Idempotency key already used with another booking"
    assert replayed.json()["id"] == first.json()["id"]


def test_blank_idempotency_key_is_rejected(client, clinic, auth_headers):
    headers = {**auth_headers(clinic["customer"]), "Idempotency-Key": "   "}

    response = _book(client, headers, clinic["laser"], clinic["doctor"], "2025-07-09", "10:00")

    assert response.status_code == 400


def test_cancelled_booking_frees_the_slot(client, clinic, auth_headers):
    headers = auth_headers(clinic["customer"])
    booking = _book(client, headers, clinic["laser"], clinic["doctor"], "2025-07-10", "10:00").json()

    cancel = client.patch(f"/bookings/{booking['id']}/cancel", headers=headers)
    assert cancel.status_code == 200
    assert cancel.json()["status"] == "cancelled"
    assert cancel.json()["cancelled_at"] is not None

    rebook = _book(
        client,
        auth_headers(clinic["other_customer"]),
        clinic["laser"],
        clinic["doctor"],
        "2025-07-10",
        "10:00",
    )
    assert rebook.status_code == 201


def test_customer_cannot_touch_someone_elses_booking(client, clinic, auth_headers):
    booking = _book(
        client,
        auth_headers(clinic["customer"]),
        clinic["laser"],
        clinic["doctor"],
        "2025-07-10",
        "10:00",
    ).json()
    intruder = auth_headers(clinic["other_customer"])

    assert client.get(f"/bookings/{booking['id']}", headers=intruder).status_code == 403
    assert client.patch(f"/bookings/{booking['id']}/cancel", headers=intruder).status_code == 403


def test_reschedule_checks_overlap_but_ignores_the_moved_booking(client, clinic, auth_headers):
    headers = auth_headers(clinic["customer"])
    laser = clinic["laser"]
    doctor = clinic["doctor"]
    first = _book(client, headers, laser, doctor, "2025-07-11", "10:00").json()
    _book(client, headers, laser, doctor, "2025-07-11", "11:00")

    shifted = client.patch(
        f"/bookings/{first['id']}/reschedule",
        headers=headers,
        json={"date": "2025-07-11", "time": "10:15 am"},
    )
    assert shifted.status_code == 200
    assert shifted.json()["booking_time"] == "10:15:00"
    assert shifted.json()["booking_end_time"] == "10:45:00"

    clash = client.patch(
        f"/bookings/{first['id']}/reschedule",
        headers=headers,
        json={"date": "2025-07-11", "time": "10:45 am"},
    )
    assert clash.status_code == 409

    unchanged = client.get(f"/bookings/{first['id']}", headers=headers)
    assert unchanged.json()["booking_time"] == "10:15:00"


def test_assigning_a_doctor_later_runs_the_overlap_check(client, clinic, auth_headers):
    headers = auth_headers(clinic["customer"])
    laser = clinic["laser"]
    doctor = clinic["doctor"]
    _book(client, headers, laser, doctor, "2025-07-12", "10:00")
    unassigned = _book(client, headers, laser, None, "2025-07-12", "10:00").json()

    assign = client.patch(
        f"/bookings/{unassigned['id']}/reschedule",
        headers=headers,
        json={"date": "2025-07-12", "time": "10:00", "doctor_id": doctor.id},
    )
    assert assign.status_code == 409

    assign_later = client.patch(
        f"/bookings/{unassigned['id']}/reschedule",
        headers=headers,
        json={"date": "2025-07-12", "time": "10:30", "doctor_id": doctor.id},
    )
    assert assign_later.status_code == 200
    assert assign_later.json()["doctor_id"] == doctor.id


def test_cancelled_booking_cannot_be_rescheduled(client, clinic, auth_headers):
    headers = auth_headers(clinic["customer"])
    booking = _book(client, headers, clinic["laser"], clinic["doctor"], "2025-07-13", "10:00").json()
    client.patch(f"/bookings/{booking['id']}/cancel", headers=headers)

    response = client.patch(
        f"/bookings/{booking['id']}/reschedule",
        headers=headers,
        json={"date": "2025-07-14", "time": "10:00"},
    )

    assert response.status_code == 409


def test_my_bookings_lists_only_own_bookings_with_filters(client, clinic, auth_headers):
    headers = auth_headers(clinic["customer"])
    laser = clinic["laser"]
    _book(client, headers, laser, clinic["doctor"], "2025-07-14", "10:00")
    cancelled = _book(client, headers, laser, clinic["doctor"], "2025-07-15", "10:00").json()
    client.patch(f"/bookings/{cancelled['id']}/cancel", headers=headers)
    _book(client, auth_headers(clinic["other_customer"]), laser, clinic["doctor"], "2025-07-16", "10:00")

    everything = client.get("/bookings/me", headers=headers)
    pending = client.get("/bookings/me?status=pending", headers=headers)
    from_15th = client.get("/bookings/me?date_from=2025-07-15", headers=headers)

    assert [item["booking_date"] for item in everything.json()] == ["2025-07-14", "2025-07-15"]
    assert [item["booking_date"] for item in pending.json()] == ["2025-07-14"]
    assert [item["id"] for item in from_15th.json()] == [cancelled["id"]]
