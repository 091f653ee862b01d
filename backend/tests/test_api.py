"""HTTP surface tests (auth, role guards, status codes, request -> payment flow)."""

from datetime import timedelta

import jwt

from app.db.models import CaseStatus, HearingStatus
from app.utils.helpers import utcnow


def test_root_and_health(client):
    assert client.get("/").json()["message"] == "Courtline API is running"
    assert client.get("/health").json() == {"status": "healthy"}

    ready = client.get("/api/v1/health/ready").json()
    assert ready["status"] == "healthy"
    assert ready["database"]["status"] == "ok"
    assert ready["scheduler"]["status"] == "disabled"


# ============================================================================
# Auth
# ============================================================================

def test_missing_token_is_rejected(client):
    response = client.get("/api/v1/cases/")
    assert response.status_code in (401, 403)


def test_invalid_token_is_rejected(client):
    response = client.get("/api/v1/cases/", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid token"


def test_expired_token_is_rejected(client, litigant):
    token = jwt.encode(
        {"sub": str(litigant.id), "exp": utcnow() - timedelta(minutes=1)},
        "test-secret",
        algorithm="HS256",
    )
    response = client.get("/api/v1/cases/", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Token expired"


def test_unknown_user_is_rejected(client):
    token = jwt.encode({"sub": "8c0b1f0e-0000-4000-8000-000000000000"}, "test-secret", algorithm="HS256")
    response = client.get("/api/v1/cases/", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


# ============================================================================
# Cases & hearings
# ============================================================================

def test_litigant_files_and_lists_cases(client, headers_for, litigant, advocate):
    payload = {
        "title": "Recovery of security deposit",
        "description": "Landlord refuses to return the deposit",
        "case_type": "civil",
        "court": "district",
    }
    created = client.post("/api/v1/cases/", json=payload, headers=headers_for(litigant))
    assert created.status_code == 201
    body = created.json()
    assert body["status"] == "pending-approval"
    assert body["case_number"].startswith("CL")

    listed = client.get("/api/v1/cases/", headers=headers_for(litigant)).json()
    assert [c["id"] for c in listed] == [body["id"]]
    assert client.get("/api/v1/cases/", headers=headers_for(advocate)).json() == []


def test_case_detail_is_participant_only(client, factory, headers_for, litigant, advocate, officer):
    case = factory.case(litigant, advocates=[advocate])
    outsider = factory.user(litigant.role)

    assert client.get(f"/api/v1/cases/{case.id}", headers=headers_for(advocate)).status_code == 200
    assert client.get(f"/api/v1/cases/{case.id}", headers=headers_for(officer)).status_code == 200
    assert client.get(f"/api/v1/cases/{case.id}", headers=headers_for(outsider)).status_code == 403


def test_litigant_cannot_schedule_hearing(client, factory, headers_for, litigant, advocate):
    case = factory.case(litigant, advocates=[advocate])
    payload = {
        "case_id": str(case.id),
        "date": (utcnow() + timedelta(days=2)).isoformat(),
        "hearing_type": "physical",
    }
    response = client.post("/api/v1/hearings/", json=payload, headers=headers_for(litigant))
    assert response.status_code == 403


def test_officer_schedules_hearing(client, factory, headers_for, litigant, advocate, officer):
    case = factory.case(litigant, advocates=[advocate])
    payload = {
        "case_id": str(case.id),
        "date": (utcnow() + timedelta(days=2)).isoformat(),
        "duration": 45,
        "hearing_type": "virtual",
    }
    response = client.post("/api/v1/hearings/", json=payload, headers=headers_for(officer))

    assert response.status_code == 201
    hearing = response.json()
    assert hearing["status"] == "scheduled"
    assert hearing["virtual_link"].endswith(hearing["id"])
    assert len(hearing["attendees"]) == 2

    detail = client.get(f"/api/v1/cases/{case.id}", headers=headers_for(litigant)).json()
    assert detail["status"] == "scheduled-hearing"

    unread = client.get("/api/v1/notifications/unread-count", headers=headers_for(litigant)).json()
    assert unread == {"count": 1}


def test_invalid_hearing_transition_returns_reason(client, factory, headers_for, litigant, advocate, officer):
    case = factory.case(litigant, status=CaseStatus.scheduled_hearing, advocates=[advocate])
    hearing = factory.hearing(case, utcnow() + timedelta(days=1))

    response = client.put(
        f"/api/v1/hearings/{hearing.id}/status",
        json={"status": "completed"},
        headers=headers_for(officer),
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid status transition from scheduled to completed"


def test_cancel_hearing_closes_case(client, factory, headers_for, litigant, advocate, officer):
    case = factory.case(litigant, status=CaseStatus.scheduled_hearing, advocates=[advocate])
    hearing = factory.hearing(case, utcnow() + timedelta(days=1))

    response = client.put(
        f"/api/v1/hearings/{hearing.id}/status",
        json={"status": HearingStatus.cancelled.value},
        headers=headers_for(officer),
    )
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"

    detail = client.get(f"/api/v1/cases/{case.id}", headers=headers_for(officer)).json()
    assert detail["status"] == "closed"
    assert detail["close_reason"] == "Hearing was cancelled"


def test_missing_hearing_is_404(client, headers_for, officer):
    response = client.get("/api/v1/hearings/8c0b1f0e-0000-4000-8000-000000000000", headers=headers_for(officer))
    assert response.status_code == 404


# ============================================================================
# Case request -> payment
# ============================================================================

def test_request_respond_pay_flow(client, headers_for, litigant, advocate):
    created = client.post(
        "/api/v1/case-requests/",
        json={
            "advocate_id": str(advocate.id),
            "case_title": "Partition of ancestral property",
            "case_description": "Co-owners refuse partition of the family home",
            "case_type": "property",
            "court": "district",
        },
        headers=headers_for(litigant),
    )
    assert created.status_code == 201
    request_id = created.json()["id"]

    # Litigants cannot respond
    forbidden = client.put(
        f"/api/v1/case-requests/{request_id}/respond",
        json={"status": "accepted", "payment_amount": 5000},
        headers=headers_for(litigant),
    )
    assert forbidden.status_code == 403

    invalid = client.put(
        f"/api/v1/case-requests/{request_id}/respond",
        json={"status": "maybe"},
        headers=headers_for(advocate),
    )
    assert invalid.status_code == 400
    assert invalid.json()["detail"] == "Please provide a valid status (accepted, rejected, or payment-requested)"

    responded = client.put(
        f"/api/v1/case-requests/{request_id}/respond",
        json={"status": "accepted", "payment_amount": 5000},
        headers=headers_for(advocate),
    )
    assert responded.status_code == 200
    assert responded.json()["status"] == "payment-requested"

    notifications = client.get("/api/v1/notifications/", headers=headers_for(litigant)).json()
    payment_notification = next(n for n in notifications if n["type"] == "payment")
    assert payment_notification["is_action_required"] is True

    paid = client.post(
        "/api/v1/payment/",
        json={"notification_id": payment_notification["id"]},
        headers=headers_for(litigant),
    )
    assert paid.status_code == 200
    result = paid.json()
    assert result["success"] is True
    assert result["case_request"]["status"] == "accepted"
    assert result["case"]["status"] == "approved"
    assert result["payment"]["reference"].startswith("SIM-")

    # Paying twice is refused
    again = client.post(
        "/api/v1/payment/",
        json={"notification_id": payment_notification["id"]},
        headers=headers_for(litigant),
    )
    assert again.status_code == 403

    litigant_notifications = client.get("/api/v1/notifications/", headers=headers_for(litigant)).json()
    assert len(litigant_notifications) == len(notifications)
    promoted = next(n for n in litigant_notifications if n["id"] == payment_notification["id"])
    assert promoted["type"] == "payment-completed"
    assert promoted["is_read"] is True

    # New Case Request, Payment Requested, Payment Received
    advocate_unread = client.get("/api/v1/notifications/unread-count", headers=headers_for(advocate)).json()
    assert advocate_unread == {"count": 3}
    assert client.put("/api/v1/notifications/read-all", headers=headers_for(advocate)).json() == {"updated": 3}
    assert client.get("/api/v1/notifications/unread-count", headers=headers_for(advocate)).json() == {"count": 0}


def test_notification_belongs_to_recipient(client, factory, headers_for, litigant, advocate, officer):
    case = factory.case(litigant, status=CaseStatus.pending_approval)
    client.put(
        f"/api/v1/cases/{case.id}/advocates",
        json={"advocate_id": str(advocate.id)},
        headers=headers_for(officer),
    )
    notifications = client.get("/api/v1/notifications/", headers=headers_for(advocate)).json()
    assert [n["type"] for n in notifications] == ["case-assignment"]

    notification_id = notifications[0]["id"]
    assert client.put(f"/api/v1/notifications/{notification_id}/read", headers=headers_for(litigant)).status_code == 403
    marked = client.put(f"/api/v1/notifications/{notification_id}/read", headers=headers_for(advocate))
    assert marked.json()["is_read"] is True
    assert client.delete(f"/api/v1/notifications/{notification_id}", headers=headers_for(advocate)).status_code == 204
