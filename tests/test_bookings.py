import uuid
from datetime import date, time, timedelta

import pytest

from common.models import BookingStatus, RoleEnum, RoomBooking

BOOKING_DAY = date.today() + timedelta(days=30)


@pytest.fixture()
def admin_headers(admin, auth_header):
    return auth_header(admin)


@pytest.fixture()
def employee_headers(employee, auth_header):
    return auth_header(employee)


@pytest.fixture()
def floor(rooms_client, admin_headers):
    response = rooms_client.post("/floors", json={"floor_number": 3, "name": "Third"}, headers=admin_headers)
    return response.json()


def _create_room(rooms_client, headers, floor, name, **fields):
    response = rooms_client.post(
        "/rooms", json={"floor_id": floor["id"], "name": name, "capacity": 8, **fields}, headers=headers
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture()
def room(rooms_client, admin_headers, floor):
    return _create_room(rooms_client, admin_headers, floor, "Board Room")


@pytest.fixture()
def approval_room(rooms_client, admin_headers, floor):
    return _create_room(rooms_client, admin_headers, floor, "Executive Suite", requires_approval=True)


def booking_payload(room, start="09:00", end="10:00", booking_date=BOOKING_DAY, **fields):
    return {
        "room_id": room["id"],
        "booking_date": booking_date.isoformat(),
        "start_time": start,
        "end_time": end,
        "title": "Quarterly review",
        **fields,
    }


def test_health(bookings_client):
    assert bookings_client.get("/health").json() == {"status": "ok", "service": "bookings"}


def test_booking_flow(bookings_client, room, employee, employee_headers):
    create_resp = bookings_client.post("/bookings", json=booking_payload(room), headers=employee_headers)
    assert create_resp.status_code == 201
    booking = create_resp.json()
    assert booking["status"] == "approved"
    assert booking["requester_id"] == employee.actor_id

    list_resp = bookings_client.get("/bookings", headers=employee_headers)
    assert [b["id"] for b in list_resp.json()] == [booking["id"]]

    cancel_resp = bookings_client.put(
        f"/bookings/{booking['id']}/cancel", json={"reason": "Moved online"}, headers=employee_headers
    )
    assert cancel_resp.status_code == 200
    assert cancel_resp.json()["status"] == "cancelled"
    assert cancel_resp.json()["cancellation_reason"] == "Moved online"


def test_requires_authentication(bookings_client, room):
    assert bookings_client.post("/bookings", json=booking_payload(room)).status_code == 401


def test_overlap_returns_conflict_details(bookings_client, room, employee_headers, make_actor, auth_header):
    first = bookings_client.post(
        "/bookings", json=booking_payload(room, "09:00", "10:30"), headers=employee_headers
    ).json()

    response = bookings_client.post(
        "/bookings", json=booking_payload(room, "10:00", "11:00"), headers=auth_header(make_actor())
    )

    assert response.status_code == 409
    body = response.json()
    assert body["code"] == "booking_conflict"
    (conflict,) = body["conflicts"]
    assert conflict["date"] == BOOKING_DAY.isoformat()
    assert [b["id"] for b in conflict["bookings"]] == [first["id"]]


def test_touching_bookings_succeed(bookings_client, room, employee_headers):
    for start, end in (("09:00", "10:00"), ("10:00", "11:00")):
        response = bookings_client.post("/bookings", json=booking_payload(room, start, end), headers=employee_headers)
        assert response.status_code == 201


def test_past_booking_rejected(bookings_client, room, employee_headers):
    payload = booking_payload(room, booking_date=date.today() - timedelta(days=1))

    response = bookings_client.post("/bookings", json=payload, headers=employee_headers)

    assert response.status_code == 400
    assert response.json()["code"] == "validation_error"


def test_invalid_time_range_rejected_by_schema(bookings_client, room, employee_headers):
    response = bookings_client.post(
        "/bookings", json=booking_payload(room, "11:00", "10:00"), headers=employee_headers
    )

    assert response.status_code == 422


def test_recurring_booking_returns_every_occurrence(bookings_client, room, employee_headers):
    payload = booking_payload(
        room,
        recurring_pattern={
            "frequency": "daily",
            "end_date": (BOOKING_DAY + timedelta(days=4)).isoformat(),
        },
    )

    response = bookings_client.post("/bookings", json=payload, headers=employee_headers)

    assert response.status_code == 201
    bookings = response.json()
    assert len(bookings) == 5
    assert len({b["series_id"] for b in bookings}) == 1


def test_approval_workflow(bookings_client, approval_room, employee_headers, admin_headers):
    booking = bookings_client.post("/bookings", json=booking_payload(approval_room), headers=employee_headers).json()
    assert booking["status"] == "pending"

    pending = bookings_client.get("/bookings/pending", headers=admin_headers).json()
    assert [b["id"] for b in pending] == [booking["id"]]

    denied = bookings_client.put(f"/bookings/{booking['id']}/approve", headers=employee_headers)
    assert denied.status_code == 403

    approved = bookings_client.put(
        f"/bookings/{booking['id']}/approve", json={"notes": "Projector booked too"}, headers=admin_headers
    )
    assert approved.status_code == 200
    assert approved.json()["status"] == "approved"
    assert approved.json()["approval_notes"] == "Projector booked too"

    again = bookings_client.put(f"/bookings/{booking['id']}/approve", headers=admin_headers)
    assert again.status_code == 409
    assert again.json()["code"] == "invalid_state_transition"
    assert again.json()["current_status"] == "approved"


def test_rejected_booking_cannot_be_approved(bookings_client, approval_room, employee_headers, admin_headers):
    booking = bookings_client.post("/bookings", json=booking_payload(approval_room), headers=employee_headers).json()

    rejected = bookings_client.put(
        f"/bookings/{booking['id']}/reject", json={"reason": "Board meeting"}, headers=admin_headers
    )
    assert rejected.json()["rejection_reason"] == "Board meeting"

    response = bookings_client.put(f"/bookings/{booking['id']}/approve", headers=admin_headers)
    assert response.status_code == 409
    assert bookings_client.get(f"/bookings/{booking['id']}", headers=admin_headers).json()["status"] == "rejected"


def test_reject_requires_reason(bookings_client, approval_room, employee_headers, admin_headers):
    booking = bookings_client.post("/bookings", json=booking_payload(approval_room), headers=employee_headers).json()

    response = bookings_client.put(f"/bookings/{booking['id']}/reject", json={"reason": "  "}, headers=admin_headers)

    assert response.status_code == 422


def test_update_pending_booking(bookings_client, approval_room, employee_headers):
    booking = bookings_client.post("/bookings", json=booking_payload(approval_room), headers=employee_headers).json()

    response = bookings_client.put(
        f"/bookings/{booking['id']}",
        json={"start_time": "13:00", "end_time": "14:00", "title": "Moved"},
        headers=employee_headers,
    )

    assert response.status_code == 200
    assert response.json()["start_time"] == "13:00:00"
    assert response.json()["title"] == "Moved"


def test_availability_report(bookings_client, room, approval_room, employee_headers):
    bookings_client.post("/bookings", json=booking_payload(room), headers=employee_headers)
    bookings_client.post("/bookings", json=booking_payload(approval_room, "09:30", "10:30"), headers=employee_headers)

    response = bookings_client.get(
        "/bookings/availability",
        params={"date": BOOKING_DAY.isoformat(), "start_time": "09:00", "end_time": "10:00"},
        headers=employee_headers,
    )

    assert response.status_code == 200
    statuses = {entry["room_name"]: entry["status"] for entry in response.json()["rooms"]}
    assert statuses == {"Board Room": "booked", "Executive Suite": "pending"}


def test_check_availability(bookings_client, room, employee_headers):
    booking = bookings_client.post("/bookings", json=booking_payload(room), headers=employee_headers).json()
    params = {"room_id": room["id"], "date": BOOKING_DAY.isoformat(), "start_time": "09:30", "end_time": "10:30"}

    busy = bookings_client.get("/bookings/check-availability", params=params, headers=employee_headers).json()
    assert busy["available"] is False
    assert [c["id"] for c in busy["conflicts"]] == [booking["id"]]

    params["exclude_booking_id"] = booking["id"]
    free = bookings_client.get("/bookings/check-availability", params=params, headers=employee_headers).json()
    assert free["available"] is True


def test_participants(bookings_client, room, employee_headers, make_actor, auth_header):
    guest = make_actor()
    booking = bookings_client.post("/bookings", json=booking_payload(room), headers=employee_headers).json()

    added = bookings_client.post(
        f"/bookings/{booking['id']}/participants", json={"user_id": guest.actor_id}, headers=employee_headers
    )
    assert added.json()["participant_ids"] == [guest.actor_id]

    response = bookings_client.put(
        f"/bookings/{booking['id']}/participants/me", json={"response": "accepted"}, headers=auth_header(guest)
    )
    assert response.status_code == 200
    assert response.json()["response_status"] == "accepted"

    assert bookings_client.get(f"/bookings/{booking['id']}", headers=auth_header(guest)).status_code == 200

    removed = bookings_client.delete(
        f"/bookings/{booking['id']}/participants/{guest.actor_id}", headers=employee_headers
    )
    assert removed.json()["participant_ids"] == []


def test_auditor_lists_everyone(bookings_client, room, employee_headers, make_actor, auth_header):
    bookings_client.post("/bookings", json=booking_payload(room), headers=employee_headers)
    bookings_client.post("/bookings", json=booking_payload(room, "11:00", "12:00"), headers=auth_header(make_actor()))
    auditor = auth_header(make_actor(RoleEnum.AUDITOR))

    assert len(bookings_client.get("/bookings?all=true", headers=auditor).json()) == 2
    assert len(bookings_client.get("/bookings?all=true", headers=employee_headers).json()) == 1


def test_reschedule_into_taken_slot_returns_conflict(bookings_client, room, approval_room, employee_headers):
    taken = bookings_client.post("/bookings", json=booking_payload(room, "14:00", "15:00"), headers=employee_headers)
    pending = bookings_client.post("/bookings", json=booking_payload(approval_room), headers=employee_headers).json()

    response = bookings_client.put(
        f"/bookings/{pending['id']}",
        json={"room_id": room["id"], "start_time": "14:30", "end_time": "15:30"},
        headers=employee_headers,
    )

    assert response.status_code == 409
    assert response.json()["conflicts"][0]["bookings"][0]["id"] == taken.json()["id"]


def test_approving_into_taken_slot_returns_conflict(
    bookings_client, db_session, approval_room, employee_headers, admin_headers
):
    pending = bookings_client.post("/bookings", json=booking_payload(approval_room), headers=employee_headers).json()
    # A row committed behind the API's back, as a concurrent writer would leave it.
    intruder = RoomBooking(
        room_id=approval_room["id"],
        requester_id=str(uuid.uuid4()),
        booking_date=BOOKING_DAY,
        start_time=time(9, 30),
        end_time=time(10, 30),
        title="Walk-in",
        status=BookingStatus.APPROVED,
    )
    db_session.add(intruder)
    db_session.commit()

    response = bookings_client.put(f"/bookings/{pending['id']}/approve", headers=admin_headers)

    assert response.status_code == 409
    (conflict,) = response.json()["conflicts"]
    assert [b["id"] for b in conflict["bookings"]] == [intruder.id]
    assert conflict["bookings"][0]["status"] == "approved"


def test_far_future_recurrence_is_not_a_server_error(bookings_client, room, employee_headers):
    payload = booking_payload(
        room, recurring_pattern={"frequency": "daily", "interval": 3_000_000, "end_date": "9999-12-31"}
    )

    response = bookings_client.post("/bookings", json=payload, headers=employee_headers)

    assert response.status_code == 201
    assert len(response.json()) == 1


def test_deleted_booking_disappears_and_frees_slot(
    bookings_client, room, employee_headers, admin_headers, make_actor, auth_header
):
    booking = bookings_client.post("/bookings", json=booking_payload(room), headers=employee_headers).json()

    stranger = bookings_client.delete(f"/bookings/{booking['id']}", headers=auth_header(make_actor()))
    assert stranger.status_code == 403

    assert bookings_client.delete(f"/bookings/{booking['id']}", headers=employee_headers).status_code == 204
    assert bookings_client.get(f"/bookings/{booking['id']}", headers=admin_headers).status_code == 404
    assert bookings_client.delete(f"/bookings/{booking['id']}", headers=employee_headers).status_code == 404
    assert bookings_client.get("/bookings", headers=employee_headers).json() == []

    again = bookings_client.post("/bookings", json=booking_payload(room), headers=employee_headers)
    assert again.status_code == 201
