"""Bearer token checks and the error envelope, without auth overrides."""

import pytest
from jose import jwt
from libs.common.config import get_settings


def _token(sub: str, role: str = "student", secret: str = None) -> str:
    settings = get_settings()
    return jwt.encode(
        {"sub": sub, "email": f"{sub}@test.com", "role": role},
        secret or settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.mark.asyncio
@pytest.mark.integration
async def test_valid_token_is_accepted(anonymous_client):
    response = await anonymous_client.get(
        "/enrollments/me", headers=_auth(_token("student-1"))
    )

    assert response.status_code == 200
    assert response.json() == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_token_signed_with_another_key_is_401(anonymous_client):
    response = await anonymous_client.get(
        "/enrollments/me", headers=_auth(_token("student-1", secret="not-the-key"))
    )

    assert response.status_code == 401
    assert response.json() == {
        "success": False,
        "error": {"code": "HTTP_401", "message": "Could not validate credentials"},
    }


@pytest.mark.asyncio
@pytest.mark.integration
async def test_missing_token_is_refused(anonymous_client):
    response = await anonymous_client.get("/enrollments/me")

    assert response.status_code in (401, 403)
    assert response.json()["success"] is False


@pytest.mark.asyncio
@pytest.mark.integration
async def test_students_are_not_instructors(anonymous_client):
    response = await anonymous_client.get(
        "/promo-codes", headers=_auth(_token("student-1"))
    )

    assert response.status_code == 403
    assert response.json()["error"]["message"] == "Instructor privileges required"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_public_catalog_needs_no_token(anonymous_client):
    response = await anonymous_client.get("/courses")

    assert response.status_code == 200


@pytest.mark.asyncio
@pytest.mark.integration
async def test_validation_errors_list_fields(anonymous_client):
    response = await anonymous_client.post(
        "/enrollments",
        json={"schedule_id": "not-a-uuid", "surprise": True},
        headers=_auth(_token("student-1")),
    )

    assert response.status_code == 422
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    fields = {f["field"] for f in error["fields"]}
    assert {"schedule_id", "surprise"} <= fields
