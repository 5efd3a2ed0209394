from fastapi import APIRouter, Depends

from abcid.core.dependencies import get_current_identity, require_admin, require_student
from abcid.schemas.auth import ProfileResponse
from abcid.schemas.identity import AdminIdentity, StudentIdentity

router = APIRouter(tags=["Profile"])


@router.get("/profile", response_model=ProfileResponse, summary="Who am I (bearer)")
async def profile(
    identity: AdminIdentity | StudentIdentity = Depends(get_current_identity),
) -> ProfileResponse:
    return ProfileResponse(identity=identity)


@router.get("/students/me", response_model=ProfileResponse, summary="Student profile")
async def student_profile(
    student: StudentIdentity = Depends(require_student),
) -> ProfileResponse:
    return ProfileResponse(identity=student)


@router.get("/admin/me", response_model=ProfileResponse, summary="Admin profile")
async def admin_profile(
    admin: AdminIdentity = Depends(require_admin),
) -> ProfileResponse:
    return ProfileResponse(identity=admin)
