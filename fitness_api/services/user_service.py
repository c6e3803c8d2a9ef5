"""
User service - profile, branch, body metrics, privacy and device operations
"""
import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from fitness_api.database.models import (
    DEFAULT_PREFERENCES,
    DEFAULT_PRIVACY_SETTINGS,
    AggregatedAnalytics,
    AnalyticsEvent,
    BodyMetricsHistory,
    Branch,
    DietPlan,
    User,
    UserActivity,
    UserSession,
    WorkoutPlan,
    utcnow,
)
from fitness_api.database.queries import execute_with_retry
from fitness_api.services.auth_service import AuthService, hash_password
from fitness_api.utils.body_metrics import (
    calculate_bmi,
    calculate_bmr,
    calculate_progress,
    get_bmi_category,
    validate_body_metrics,
)
from fitness_api.utils.errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)


def _merge(current: Optional[dict], update: Optional[dict]) -> dict:
    merged = dict(current or {})
    for key, value in (update or {}).items():
        if value is not None:
            merged[key] = value
    return merged


def _merge_nested(current: Optional[dict], update: Dict[str, Optional[dict]]) -> dict:
    merged = {key: dict(value) for key, value in (current or {}).items() if isinstance(value, dict)}
    for section, values in update.items():
        if values is not None:
            merged[section] = _merge(merged.get(section), values)
    return merged


class UserService:
    """Service for user-related operations"""

    @staticmethod
    async def get_user(session: AsyncSession, user_id: str) -> User:
        """
        Load a user by id

        Raises:
            NotFoundError: USER_NOT_FOUND
        """
        result = await execute_with_retry(session, select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError("User", code="USER_NOT_FOUND")
        return user

    @staticmethod
    async def create_user(session: AsyncSession, data: Dict[str, Any]) -> User:
        await AuthService.ensure_unique(session, data["email"], data["username"])
        user = User(
            username=data["username"],
            email=data["email"].lower(),
            password_hash=await hash_password(data["password"]),
            name=data["name"],
            role=data.get("role") or "user",
            demographics=data.get("demographics") or {},
            fitness_profile=data.get("fitness_profile") or {},
            body_composition=data.get("body_composition") or {},
            current_macros=data.get("current_macros") or {},
            total_points=data.get("total_points") or 0,
        )
        session.add(user)
        await session.commit()
        await session.refresh(user)
        logger.info("User created by admin: %s", user.id)
        return user

    @staticmethod
    async def search_users(
        session: AsyncSession,
        query: Optional[str] = None,
        gender: Optional[str] = None,
        fitness_level: Optional[str] = None,
        city: Optional[str] = None,
        is_active: Optional[bool] = None,
        email_verified: Optional[bool] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        """
        Search users by text and filters

        Text, flag, gender and fitness level filters and pagination run in
        the database. Branch city matches inside the branches array, so a
        city search pages over the filtered candidate set.
        """
        statement = select(User)
        if query:
            pattern = f"%{query.lower()}%"
            statement = statement.where(
                or_(
                    func.lower(User.name).like(pattern),
                    func.lower(User.username).like(pattern),
                    func.lower(User.email).like(pattern),
                )
            )
        if is_active is not None:
            statement = statement.where(User.is_active == is_active)
        if email_verified is not None:
            statement = statement.where(User.email_verified == email_verified)
        if gender:
            statement = statement.where(User.demographics["gender"].as_string() == gender)
        if fitness_level:
            statement = statement.where(User.fitness_profile["level"].as_string() == fitness_level)
        statement = statement.order_by(User.created_at.desc())
        offset = (page - 1) * limit

        if city:
            result = await execute_with_retry(session, statement)
            needle = city.lower()
            users: List[User] = [
                u for u in result.scalars().all()
                if any(needle in (b.get("branch_name") or "").lower() for b in (u.branches or []))
            ]
            return {"users": users[offset:offset + limit], "total": len(users)}

        count_result = await execute_with_retry(
            session, select(func.count()).select_from(statement.order_by(None).subquery())
        )
        result = await execute_with_retry(session, statement.offset(offset).limit(limit))
        return {"users": list(result.scalars().all()), "total": count_result.scalar_one()}

    @staticmethod
    async def update_profile(session: AsyncSession, user: User, data: Dict[str, Any]) -> User:
        if data.get("name"):
            user.name = data["name"]
        if data.get("demographics") is not None:
            user.demographics = _merge(user.demographics, data["demographics"])
        if data.get("fitness_profile") is not None:
            user.fitness_profile = _merge(user.fitness_profile, data["fitness_profile"])
        await session.commit()
        await session.refresh(user)
        return user

    @staticmethod
    async def set_status(session: AsyncSession, user_id: str, is_active: bool) -> User:
        user = await UserService.get_user(session, user_id)
        user.is_active = is_active
        await session.commit()
        await session.refresh(user)
        if not is_active:
            await AuthService.invalidate_all_sessions(user.id)
        logger.info("User %s status set to active=%s", user_id, is_active)
        return user

    @staticmethod
    async def delete_account(session: AsyncSession, user_id: str) -> None:
        user = await UserService.get_user(session, user_id)
        for model in (
            UserSession,
            UserActivity,
            AnalyticsEvent,
            AggregatedAnalytics,
            BodyMetricsHistory,
            WorkoutPlan,
            DietPlan,
        ):
            await execute_with_retry(session, delete(model).where(model.user_id == user_id))
        await session.delete(user)
        await session.commit()
        await AuthService.invalidate_all_sessions(user_id)
        logger.info("User account deleted: %s", user_id)

    # Branches

    @staticmethod
    async def join_branch(session: AsyncSession, user_id: str, branch_id: str) -> Dict[str, Any]:
        user = await UserService.get_user(session, user_id)
        result = await execute_with_retry(
            session, select(Branch).where(Branch.id == branch_id, Branch.is_active.is_(True))
        )
        branch = result.scalar_one_or_none()
        if branch is None:
            raise NotFoundError("Branch", code="BRANCH_NOT_FOUND")

        branches = list(user.branches or [])
        if any(b.get("branch_id") == branch_id for b in branches):
            raise ConflictError("User is already a member of this branch", code="ALREADY_MEMBER")

        membership = {
            "branch_id": branch.id,
            "branch_name": branch.name,
            "joined_at": utcnow().isoformat(),
        }
        user.branches = branches + [membership]
        await session.commit()
        return membership

    @staticmethod
    async def leave_branch(session: AsyncSession, user_id: str, branch_id: str) -> List[dict]:
        user = await UserService.get_user(session, user_id)
        branches = list(user.branches or [])
        remaining = [b for b in branches if b.get("branch_id") != branch_id]
        if len(remaining) == len(branches):
            raise NotFoundError("Branch membership", code="NOT_MEMBER")
        user.branches = remaining
        await session.commit()
        return remaining

    # Body metrics

    @staticmethod
    def body_metrics_view(user: User) -> Dict[str, Any]:
        demographics = user.demographics or {}
        bmi = demographics.get("bmi")
        return {
            "user_id": user.id,
            "demographics": demographics,
            "body_composition": user.body_composition or {},
            "bmi": bmi,
            "bmi_category": get_bmi_category(bmi) if bmi else None,
            "updated_at": user.updated_at.isoformat() if user.updated_at else None,
        }

    @staticmethod
    async def update_body_metrics(
        session: AsyncSession,
        user_id: str,
        demographics: Optional[dict],
        body_composition: Optional[dict],
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Merge new body metrics, derive BMI/BMR and record a history snapshot

        Returns:
            Updated metrics view plus plausibility warnings
        """
        user = await UserService.get_user(session, user_id)
        new_demographics = _merge(user.demographics, demographics)
        new_composition = _merge(user.body_composition, body_composition)

        weight = new_demographics.get("weight_kg")
        height = new_demographics.get("height_cm")
        if weight and height:
            new_demographics["bmi"] = calculate_bmi(weight, height)
            age = new_demographics.get("age")
            gender = new_demographics.get("gender")
            if age and gender and not (body_composition or {}).get("basal_metabolic_rate_kcal"):
                new_composition["basal_metabolic_rate_kcal"] = calculate_bmr(weight, height, age, gender)

        user.demographics = new_demographics
        user.body_composition = new_composition
        session.add(
            BodyMetricsHistory(
                user_id=user.id,
                recorded_at=utcnow(),
                demographics=new_demographics,
                body_composition=new_composition,
                source="manual",
                notes=notes,
            )
        )
        await session.commit()
        await session.refresh(user)

        view = UserService.body_metrics_view(user)
        view["validation"] = validate_body_metrics(new_demographics, new_composition)
        return view

    @staticmethod
    async def body_metrics_history(
        session: AsyncSession,
        user_id: str,
        start=None,
        end=None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        await UserService.get_user(session, user_id)
        conditions = [BodyMetricsHistory.user_id == user_id]
        if start is not None:
            conditions.append(BodyMetricsHistory.recorded_at >= start)
        if end is not None:
            conditions.append(BodyMetricsHistory.recorded_at <= end)

        count_result = await execute_with_retry(
            session, select(func.count(BodyMetricsHistory.id)).where(*conditions)
        )
        total = count_result.scalar_one()

        result = await execute_with_retry(
            session,
            select(BodyMetricsHistory)
            .where(*conditions)
            .order_by(BodyMetricsHistory.recorded_at.desc())
            .offset((page - 1) * limit)
            .limit(limit),
        )
        records = [record.to_dict() for record in result.scalars().all()]

        progress = None
        if page == 1 and len(records) >= 2:
            progress = calculate_progress(records[0], records[1])
        return {"history": records, "total": total, "progress": progress}

    # Privacy / preferences / export

    @staticmethod
    def privacy_settings(user: User) -> Dict[str, Any]:
        return _merge(DEFAULT_PRIVACY_SETTINGS, user.privacy_settings)

    @staticmethod
    async def update_privacy(session: AsyncSession, user_id: str, update: Dict[str, Any]) -> Dict[str, Any]:
        user = await UserService.get_user(session, user_id)
        user.privacy_settings = _merge(UserService.privacy_settings(user), update)
        await session.commit()
        return user.privacy_settings

    @staticmethod
    def preferences(user: User) -> Dict[str, Any]:
        return user.preferences or DEFAULT_PREFERENCES

    @staticmethod
    async def update_preferences(session: AsyncSession, user_id: str, update: Dict[str, Optional[dict]]) -> Dict[str, Any]:
        user = await UserService.get_user(session, user_id)
        user.preferences = _merge_nested(UserService.preferences(user), update)
        await session.commit()
        return user.preferences

    @staticmethod
    async def export_health_data(session: AsyncSession, user: User) -> Dict[str, Any]:
        result = await execute_with_retry(
            session,
            select(BodyMetricsHistory)
            .where(BodyMetricsHistory.user_id == user.id)
            .order_by(BodyMetricsHistory.recorded_at.desc()),
        )
        history = [record.to_dict() for record in result.scalars().all()]
        return {
            "exported_at": utcnow().isoformat(),
            "user_id": user.id,
            "user_info": {
                "username": user.username,
                "email": user.email,
                "name": user.name,
                "created_at": user.created_at.isoformat() if user.created_at else None,
            },
            "current_data": {
                "demographics": user.demographics or {},
                "fitness_profile": user.fitness_profile or {},
                "body_composition": user.body_composition or {},
                "current_macros": user.current_macros or {},
                "active_plans": user.active_plans or {},
            },
            "privacy_settings": UserService.privacy_settings(user),
            "body_metrics_history": history,
            "export_metadata": {
                "total_history_records": len(history),
                "date_range": {
                    "earliest": history[-1]["recorded_at"],
                    "latest": history[0]["recorded_at"],
                } if history else None,
            },
        }

    # Device tokens

    @staticmethod
    async def register_device(session: AsyncSession, user_id: str, token: str, platform: str, device_id: str) -> Dict[str, Any]:
        user = await UserService.get_user(session, user_id)
        tokens = [t for t in (user.device_tokens or []) if t.get("device_id") != device_id]
        entry = {
            "id": str(uuid.uuid4()),
            "token": token,
            "platform": platform,
            "device_id": device_id,
            "is_active": True,
            "registered_at": utcnow().isoformat(),
        }
        user.device_tokens = tokens + [entry]
        await session.commit()
        return entry

    @staticmethod
    async def remove_device(session: AsyncSession, user_id: str, token_id: str) -> int:
        user = await UserService.get_user(session, user_id)
        tokens = list(user.device_tokens or [])
        remaining = [t for t in tokens if t.get("id") != token_id]
        if len(remaining) == len(tokens):
            raise NotFoundError("Device token", code="TOKEN_NOT_FOUND")
        user.device_tokens = remaining
        await session.commit()
        return len(remaining)
