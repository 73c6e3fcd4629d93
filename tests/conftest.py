import asyncio
import json
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from clinic_console.core.config import Settings
from clinic_console.core.http import BackendClient, create_http_client
from clinic_console.main import create_app
from clinic_console.services.preview import ImpactPreviewService
from clinic_console.services.registry import ShiftRegistry
from clinic_console.services.session import Session
from clinic_console.services.shift_api import ShiftApi

Responder = Union[httpx.Response, Callable[[httpx.Request], Any]]

USERS = {
    "admin@clinic.vn": {"id": 1, "email": "admin@clinic.vn", "fullName": "Quản Trị", "roleId": 1},
    "recep@clinic.vn": {"id": 2, "email": "recep@clinic.vn", "fullName": "Lễ Tân", "roleId": 2},
    "patient@clinic.vn": {"id": 3, "email": "patient@clinic.vn", "fullName": "Bệnh Nhân", "roleId": 3, "patientId": 30},
    "doctor@clinic.vn": {"id": 4, "email": "doctor@clinic.vn", "fullName": "Bác Sĩ An", "roleId": 4, "doctorId": 7},
}
PASSWORD = "Secret123"

SHIFTS = [
    {"id": 1, "name": "MORNING", "startTime": "08:00", "endTime": "12:00"},
    {"id": 2, "name": "AFTERNOON", "startTime": "13:00", "endTime": "17:00"},
    {"id": 3, "name": "EVENING", "startTime": "18:00", "endTime": "22:00"},
]

def _doctor(doctor_id: int, name: str) -> Dict[str, Any]:
    return {
        "id": doctor_id,
        "doctorCode": f"BS{doctor_id:03d}",
        "user": {"id": 100 + doctor_id, "fullName": name, "email": f"bs{doctor_id}@clinic.vn"},
        "specialty": {"id": 1, "name": "Nội khoa"},
    }

# Week of Monday 2025-03-03
DOCTOR_SHIFTS = [
    {"id": 1, "doctorId": 7, "shiftId": 1, "workDate": "2025-03-03", "status": "ACTIVE",
     "doctor": _doctor(7, "Bác Sĩ An"), "shift": SHIFTS[0]},
    {"id": 2, "doctorId": 8, "shiftId": 2, "workDate": "2025-03-04T00:00:00.000Z", "status": "ACTIVE",
     "doctor": _doctor(8, "Bác Sĩ Bình"), "shift": SHIFTS[1]},
    {"id": 3, "doctorId": 7, "shiftId": 1, "workDate": "2025-03-05", "status": "CANCELLED",
     "replacementDoctorId": 9, "cancelReason": "Nghỉ phép",
     "doctor": _doctor(7, "Bác Sĩ An"), "shift": SHIFTS[0]},
    {"id": 4, "doctorId": 8, "shiftId": 1, "workDate": "2025-03-03", "status": "ACTIVE",
     "doctor": _doctor(8, "Bác Sĩ Bình"), "shift": SHIFTS[0]},
]

def envelope(data: Any = None, status_code: int = 200, **extra) -> httpx.Response:
    body = {"success": True, **extra}
    if data is not None:
        body["data"] = data
    return httpx.Response(status_code, json=body)

def failure(status_code: int, message: Optional[str] = None) -> httpx.Response:
    body: Dict[str, Any] = {"success": False}
    if message is not None:
        body["message"] = message
    return httpx.Response(status_code, json=body)


class FakeBackend:
    """Scriptable clinic REST API served through httpx.MockTransport.

    Protected endpoints require ``Authorization: Bearer <token>`` with a token
    from ``valid_tokens``; scripted responses registered with ``on`` take
    precedence over the built-in behaviour.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.scripted: Dict[Tuple[str, str], List[Responder]] = {}
        self.valid_tokens = set()
        self.refresh_tokens = {}
        self.token_counter = 0
        self.preview = {
            "affectedAppointments": 3,
            "hasReplacementDoctor": True,
            "replacementDoctorId": 42,
            "canAutoReschedule": True,
        }
        self.cancel_result = {"totalAppointments": 3, "rescheduledCount": 3, "failedCount": 0}

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def on(self, method: str, path: str, *responses: Responder) -> None:
        """Queue responses for ``method path``; the last one repeats."""
        self.scripted[(method.upper(), path)] = list(responses)

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method.upper() and r.url.path == path]

    def issue_tokens(self, email: str) -> Dict[str, str]:
        self.token_counter += 1
        access = f"access-{self.token_counter}"
        refresh = f"refresh-{self.token_counter}"
        self.valid_tokens.add(access)
        self.refresh_tokens[refresh] = email
        return {"accessToken": access, "refreshToken": refresh}

    def expire_all_access_tokens(self) -> None:
        self.valid_tokens.clear()

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)

        if key in self.scripted:
            queue = self.scripted[key]
            responder = queue.pop(0) if len(queue) > 1 else queue[0]
            if isinstance(responder, httpx.Response):
                return responder
            result = responder(request)
            if asyncio.iscoroutine(result):
                result = await result
            return result

        return self._default(request)

    def _body(self, request: httpx.Request) -> Dict[str, Any]:
        return json.loads(request.content) if request.content else {}

    def _authorized(self, request: httpx.Request) -> bool:
        header = request.headers.get("Authorization", "")
        return header.startswith("Bearer ") and header[len("Bearer "):] in self.valid_tokens

    def _default(self, request: httpx.Request) -> httpx.Response:
        method, path = request.method, request.url.path

        if (method, path) == ("POST", "/auth/login"):
            body = self._body(request)
            user = USERS.get(body.get("email"))
            if not user or body.get("password") != PASSWORD:
                return failure(401, "Email hoặc mật khẩu không đúng")
            return httpx.Response(200, json={
                "success": True, "tokens": self.issue_tokens(user["email"]), "user": user,
            })

        if (method, path) == ("POST", "/auth/refresh-token"):
            email = self.refresh_tokens.get(self._body(request).get("refreshToken"))
            if email is None:
                return failure(401, "Refresh token không hợp lệ")
            self.token_counter += 1
            access = f"access-{self.token_counter}"
            self.valid_tokens.add(access)
            return httpx.Response(200, json={"success": True, "accessToken": access, "user": USERS[email]})

        if (method, path) == ("POST", "/auth/logout"):
            return envelope(message="Đăng xuất thành công")

        if not self._authorized(request):
            return failure(401, "Unauthorized")

        if (method, path) == ("GET", "/profile"):
            return envelope(USERS["admin@clinic.vn"])
        if (method, path) == ("GET", "/shifts"):
            return envelope(SHIFTS)
        if (method, path) == ("GET", "/doctor-shifts"):
            return envelope(DOCTOR_SHIFTS)

        parts = path.strip("/").split("/")
        if len(parts) == 3 and parts[0] == "doctor-shifts":
            action = parts[2]
            if method == "GET" and action == "reschedule-preview":
                return envelope(self.preview)
            if method == "POST" and action == "cancel-and-reschedule":
                return envelope(self.cancel_result, message="Đã hủy ca trực")
            if method == "POST" and action == "restore":
                return envelope({"id": int(parts[1]), "status": "ACTIVE"})

        return failure(404, "Not found")


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()

@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        TESTING=True,
        BACKEND_API_URL="http://backend.test",
        WORKFLOW_TIMEOUT_SECONDS=0.5,
        REFRESH_INITIAL_DELAY_SECONDS=0.0,
        MIN_REFRESH_INTERVAL_SECONDS=0.0,
        REFRESH_TOKEN=None,
    )

@pytest.fixture
def client(backend, test_settings):
    app = create_app(test_settings, transport=backend.transport)
    with TestClient(app, base_url="http://testserver") as test_client:
        yield test_client

def login(client: TestClient, email: str = "admin@clinic.vn") -> Dict[str, Any]:
    response = client.post("/api/v1/auth/login", json={"email": email, "password": PASSWORD})
    assert response.status_code == 200, response.text
    return response.json()

@pytest.fixture
def admin_client(client):
    login(client, "admin@clinic.vn")
    return client

# Async building blocks for unit tests

@pytest_asyncio.fixture
async def http(backend, test_settings):
    async with create_http_client(test_settings, backend.transport) as async_client:
        yield async_client

@pytest_asyncio.fixture
async def session(http, test_settings) -> Session:
    return Session(http, test_settings)

@pytest_asyncio.fixture
async def admin_session(session) -> Session:
    await session.login("admin@clinic.vn", PASSWORD)
    return session

@pytest_asyncio.fixture
async def shift_api(http, admin_session) -> ShiftApi:
    return ShiftApi(BackendClient(http, admin_session))

@pytest_asyncio.fixture
async def registry(shift_api) -> ShiftRegistry:
    registry = ShiftRegistry(shift_api)
    await registry.load_all()
    return registry

@pytest_asyncio.fixture
async def previews(shift_api) -> ImpactPreviewService:
    return ImpactPreviewService(shift_api)
