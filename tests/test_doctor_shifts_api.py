import json

import pytest

from tests.conftest import envelope, failure, login

API = "/api/v1/doctor-shifts"

test_reason_data = {
    "reason": "Bác sĩ ốm đột xuất"
}

class TestScheduleViews:

    def test_requires_login(self, client):
        """Test the schedule is hidden from anonymous callers."""
        response = client.get(API)
        assert response.status_code == 401

    def test_patient_forbidden(self, client):
        """Test patients cannot read the duty schedule."""
        login(client, "patient@clinic.vn")

        response = client.get(API)
        assert response.status_code == 403

    def test_list_doctor_shifts(self, admin_client, backend):
        """Test the list is loaded once and returned in camelCase."""
        response = admin_client.get(API)
        assert response.status_code == 200

        data = response.json()
        assert [item["id"] for item in data] == [1, 4, 2, 3]
        assert data[0]["workDate"] == "2025-03-03"
        assert data[0]["doctor"]["fullName"] == "Bác Sĩ An"
        assert data[0]["shift"]["startTime"] == "08:00"

        admin_client.get(API)
        assert len(backend.calls("GET", "/doctor-shifts")) == 1

    def test_list_filtered_by_doctor(self, admin_client):
        """Test staff can filter by doctor."""
        response = admin_client.get(API, params={"doctor_id": 8})
        assert [item["id"] for item in response.json()] == [4, 2]

    def test_doctor_sees_own_shifts_only(self, client):
        """Test a doctor's filter is forced to their own doctor id."""
        login(client, "doctor@clinic.vn")

        response = client.get(API, params={"doctor_id": 8})
        assert response.status_code == 200
        assert [item["id"] for item in response.json()] == [1, 3]

        assert client.get(f"{API}/2").status_code == 403
        assert client.get(f"{API}/1").status_code == 200

    def test_get_unknown_shift(self, admin_client):
        """Test a 404 for an id the backend never returned."""
        response = admin_client.get(f"{API}/999")
        assert response.status_code == 404
        assert response.json()["error"] == "AssignmentNotFoundError"

    def test_week_grid(self, admin_client):
        """Test the week grid of the anchor's week."""
        response = admin_client.get(f"{API}/week", params={"anchor": "2025-03-06"})
        assert response.status_code == 200

        grid = response.json()
        assert len(grid) == 7
        assert grid[0]["day"] == "2025-03-03"
        assert grid[6]["day"] == "2025-03-09"
        monday_morning = grid[0]["shifts"][0]
        assert monday_morning["shift"]["name"] == "MORNING"
        assert [a["id"] for a in monday_morning["active"]] == [1, 4]
        assert [a["id"] for a in grid[2]["shifts"][0]["cancelled"]] == [3]

    def test_week_grid_without_leave(self, admin_client):
        """Test hiding doctors on leave."""
        response = admin_client.get(f"{API}/week", params={"anchor": "2025-03-06", "on_leave": False})
        assert all(cell["cancelled"] == [] for day in response.json() for cell in day["shifts"])

    def test_stats(self, admin_client):
        """Test status counts."""
        response = admin_client.get(f"{API}/stats")
        assert response.json() == {"active": 3, "cancelled": 1, "replaced": 0, "total": 4}

    def test_shift_definitions(self, admin_client):
        """Test shift definitions ordered by start time."""
        response = admin_client.get("/api/v1/shifts")
        assert [s["name"] for s in response.json()] == ["MORNING", "AFTERNOON", "EVENING"]

    def test_reload(self, admin_client, backend):
        """Test reload fetches the lists again."""
        admin_client.get(API)
        response = admin_client.post(f"{API}/reload")

        assert response.status_code == 200
        assert response.json()["total"] == 4
        assert len(backend.calls("GET", "/doctor-shifts")) == 2

    def test_fetch_failure(self, admin_client, backend):
        """Test a failed list fetch is reported with the fetch message."""
        backend.on("GET", "/doctor-shifts", failure(500))

        response = admin_client.get(API)
        assert response.status_code == 502
        assert response.json() == {
            "error": "FetchError",
            "message": "Không thể tải danh sách ca trực",
        }

class TestCancellationEndpoints:

    def test_cancel_flow(self, admin_client, backend):
        """Test cancelling a shift through the console API."""
        response = admin_client.post(f"{API}/1/cancellation")
        assert response.status_code == 200
        view = response.json()
        assert view["state"] == "preview_ready"
        assert view["assignmentId"] == 1
        assert view["preview"]["affectedAppointments"] == 3
        assert view["canConfirm"] is False

        response = admin_client.put(f"{API}/1/cancellation/reason", json=test_reason_data)
        assert response.json()["state"] == "reason_entry"
        assert response.json()["canConfirm"] is True

        response = admin_client.post(f"{API}/1/cancellation/confirm")
        assert response.status_code == 200
        view = response.json()
        assert view["state"] == "succeeded"
        assert view["message"] == "Đã hủy ca trực thành công! 3/3 lịch hẹn đã được xử lý."
        assert view["result"]["rescheduledCount"] == 3

        commit = backend.calls("POST", "/doctor-shifts/1/cancel-and-reschedule")[0]
        assert json.loads(commit.content)["cancelReason"] == test_reason_data["reason"]
        assert admin_client.get(f"{API}/1").json()["status"] == "CANCELLED"
        assert admin_client.get(f"{API}/stats").json()["cancelled"] == 2

    def test_blank_reason(self, admin_client, backend):
        """Test a blank reason is refused without calling the backend."""
        admin_client.post(f"{API}/1/cancellation")
        admin_client.put(f"{API}/1/cancellation/reason", json={"reason": "   "})

        response = admin_client.post(f"{API}/1/cancellation/confirm")
        assert response.status_code == 422
        assert response.json()["error"] == "ReasonRequiredError"

        view = admin_client.get(f"{API}/1/cancellation").json()
        assert view["state"] == "reason_entry"
        assert view["validationMessage"] == "Vui lòng nhập lý do hủy ca"
        assert backend.calls("POST", "/doctor-shifts/1/cancel-and-reschedule") == []

    def test_preview_failure_then_retry(self, admin_client, backend):
        """Test a failed preview is shown in the view and can be retried."""
        backend.on("GET", "/doctor-shifts/2/reschedule-preview", failure(500), envelope(backend.preview))

        view = admin_client.post(f"{API}/2/cancellation").json()
        assert view["state"] == "failed"
        assert view["failedStage"] == "preview"
        assert view["message"] == "Không thể lấy thông tin preview"

        view = admin_client.post(f"{API}/2/cancellation/retry").json()
        assert view["state"] == "preview_ready"
        assert backend.calls("POST", "/doctor-shifts/2/cancel-and-reschedule") == []

    def test_partial_failure_message(self, admin_client, backend):
        """Test the info message for appointments that could not be moved."""
        backend.cancel_result = {"totalAppointments": 4, "rescheduledCount": 1, "failedCount": 3}

        admin_client.post(f"{API}/1/cancellation")
        admin_client.put(f"{API}/1/cancellation/reason", json=test_reason_data)
        view = admin_client.post(f"{API}/1/cancellation/confirm").json()

        assert view["infoMessage"] == "Đã xử lý 4 lịch hẹn. Chuyển thành công: 1, Thất bại: 3"

    def test_commit_failure(self, admin_client, backend):
        """Test a failed commit leaves the shift active."""
        backend.on("POST", "/doctor-shifts/1/cancel-and-reschedule", failure(500))

        admin_client.post(f"{API}/1/cancellation")
        admin_client.put(f"{API}/1/cancellation/reason", json=test_reason_data)
        view = admin_client.post(f"{API}/1/cancellation/confirm").json()

        assert view["state"] == "failed"
        assert view["failedStage"] == "commit"
        assert view["message"] == "Không thể hủy ca trực"
        assert admin_client.get(f"{API}/1").json()["status"] == "ACTIVE"

    def test_cancel_cancelled_shift(self, admin_client):
        """Test an already cancelled shift cannot be cancelled."""
        response = admin_client.post(f"{API}/3/cancellation")
        assert response.status_code == 409
        assert response.json()["message"] == "Chỉ có thể hủy ca trực đang hoạt động"

    def test_cancel_unknown_shift(self, admin_client):
        """Test cancelling an id the registry does not hold."""
        response = admin_client.post(f"{API}/999/cancellation")
        assert response.status_code == 404

    def test_abandon(self, admin_client, backend):
        """Test closing the dialog resets the flow."""
        admin_client.post(f"{API}/1/cancellation")

        response = admin_client.delete(f"{API}/1/cancellation")
        assert response.json()["state"] == "idle"
        assert backend.calls("POST", "/doctor-shifts/1/cancel-and-reschedule") == []

    def test_reason_too_long(self, admin_client):
        """Test reason length validation."""
        admin_client.post(f"{API}/1/cancellation")

        response = admin_client.put(f"{API}/1/cancellation/reason", json={"reason": "x" * 1001})
        assert response.status_code == 422

    @pytest.mark.parametrize("email", ["recep@clinic.vn", "doctor@clinic.vn"])
    def test_admin_only(self, client, email):
        """Test only admins may cancel or restore."""
        login(client, email)

        assert client.post(f"{API}/1/cancellation").status_code == 403
        assert client.post(f"{API}/3/restoration").status_code == 403
        assert client.get(f"{API}/in-flight").status_code == 403

    def test_in_flight_empty(self, admin_client):
        """Test nothing is pending between requests."""
        response = admin_client.get(f"{API}/in-flight")
        assert response.json() == {"assignmentIds": []}

    def test_viewing_unknown_shift_keeps_nothing(self, admin_client):
        """Test looking at dialogs of unknown shifts does not grow the board."""
        board = admin_client.app.state.board

        for assignment_id in (999, 1000, 1001):
            assert admin_client.get(f"{API}/{assignment_id}/cancellation").json()["state"] == "idle"
            assert admin_client.get(f"{API}/{assignment_id}/restoration").json()["state"] == "idle"
            admin_client.delete(f"{API}/{assignment_id}/cancellation")
        admin_client.post(f"{API}/999/cancellation")

        assert len(board) == 0

class TestRestoreEndpoints:

    def test_restore_flow(self, admin_client, backend):
        """Test restoring a cancelled shift."""
        view = admin_client.post(f"{API}/3/restoration").json()
        assert view["state"] == "confirming"

        view = admin_client.post(f"{API}/3/restoration/confirm").json()
        assert view["state"] == "succeeded"
        assert view["message"] == "Đã khôi phục ca trực thành công!"

        assert len(backend.calls("POST", "/doctor-shifts/3/restore")) == 1
        assert admin_client.get(f"{API}/3").json()["status"] == "ACTIVE"

    def test_restore_failure(self, admin_client, backend):
        """Test a failed restore is reported and the shift stays cancelled."""
        backend.on("POST", "/doctor-shifts/3/restore", failure(500, "Không thể khôi phục: ca đã qua"))

        admin_client.post(f"{API}/3/restoration")
        view = admin_client.post(f"{API}/3/restoration/confirm").json()

        assert view["state"] == "failed"
        assert view["message"] == "Không thể khôi phục: ca đã qua"
        assert admin_client.get(f"{API}/3").json()["status"] == "CANCELLED"

    def test_restore_active_shift(self, admin_client):
        """Test an active shift cannot be restored."""
        response = admin_client.post(f"{API}/1/restoration")
        assert response.status_code == 409

    def test_confirm_without_open(self, admin_client, backend):
        """Test confirming a restore that was never opened."""
        response = admin_client.post(f"{API}/3/restoration/confirm")
        assert response.status_code == 409
        assert backend.calls("POST", "/doctor-shifts/3/restore") == []

    def test_abandon(self, admin_client):
        """Test closing the confirmation dialog."""
        admin_client.post(f"{API}/3/restoration")

        view = admin_client.delete(f"{API}/3/restoration").json()
        assert view["state"] == "idle"
        assert admin_client.get(f"{API}/3/restoration").json()["state"] == "idle"

    def test_session_expiry_during_restore(self, admin_client, backend):
        """Test an expired session that cannot be refreshed."""
        admin_client.get(API)
        admin_client.post(f"{API}/3/restoration")
        backend.expire_all_access_tokens()
        backend.refresh_tokens.clear()

        view = admin_client.post(f"{API}/3/restoration/confirm").json()
        assert view["state"] == "failed"
        assert view["error"] == "SessionExpiredError"
        assert admin_client.get("/api/v1/auth/session").json()["state"] == "anonymous"
