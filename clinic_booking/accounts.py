"""User accounts and the device session.

Passwords are stored as bcrypt hashes (salted). Records written by older
installs may still carry a plaintext `password`; it is accepted once and
replaced by a hash on the next successful login.
"""
import re
import secrets
from datetime import datetime
from typing import Callable, List, Optional

import bcrypt

from clinic_booking import config
from clinic_booking.errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from clinic_booking.events import ChangeBus
from clinic_booking.logging_config import get_logger
from clinic_booking.models import User, UserRole, generate_id
from clinic_booking.storage import Collections

logger = get_logger(__name__)

EMAIL_PATTERN = re.compile(
    r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
)

PROFILE_FIELDS = ("name", "email", "contact_number", "address", "birthday")


def hash_password(password: str, rounds: int = config.DEFAULT_BCRYPT_ROUNDS) -> str:
    """Hash password using bcrypt."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=rounds)).decode()


def verify_password(password: str, password_hash: str) -> bool:
    """Verify password against hash. A malformed hash never matches."""
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        return False


def validate_email(email: str) -> str:
    """
    Normalize and validate an email address.

    Returns:
        Lowercased email

    Raises:
        ValidationError: If the format is invalid
    """
    email = (email or "").strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValidationError(f"Email '{email}' is not valid (e.g., name@example.com)")
    return email


class AccountService:
    """Registration, login and profile management."""

    def __init__(
        self,
        collections: Collections,
        bus: ChangeBus,
        clock: Callable[[], datetime] = datetime.now,
        bcrypt_rounds: int = config.DEFAULT_BCRYPT_ROUNDS
    ):
        self.collections = collections
        self.bus = bus
        self.clock = clock
        self.bcrypt_rounds = bcrypt_rounds

    def _check_password(self, password: str) -> None:
        if not password or len(password) < config.MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {config.MIN_PASSWORD_LENGTH} characters"
            )
        if len(password.encode()) > config.MAX_PASSWORD_BYTES:
            raise ValidationError(
                f"Password must be at most {config.MAX_PASSWORD_BYTES} bytes"
            )

    @staticmethod
    def _find(users: List[User], user_id: str) -> User:
        user = next((u for u in users if u.id == user_id), None)
        if user is None:
            raise NotFoundError(f"User '{user_id}' not found")
        return user

    async def register(
        self,
        username: str,
        name: str,
        email: str,
        password: str,
        contact_number: str = "",
        address: str = "",
        birthday: str = "",
        role: UserRole = UserRole.PATIENT
    ) -> User:
        """
        Register a new user.

        Args:
            username: Unique login name (case-insensitive)
            name: Full name
            email: Unique email (stored lowercased)
            password: Plain password, hashed before storage
            contact_number: Phone number
            address: Postal address
            birthday: Date of birth
            role: patient or admin

        Returns:
            The stored user

        Raises:
            ValidationError: Missing username, invalid email, short password
            ConflictError: Username or email already registered
        """
        username = (username or "").strip()
        if not username:
            raise ValidationError("Username is required")
        email = validate_email(email)
        self._check_password(password)

        users = await self.collections.load_users()
        if any(u.username.lower() == username.lower() for u in users):
            raise ConflictError("Username already exists")
        if any(u.email == email for u in users):
            raise ConflictError("Email already registered")

        user = User(
            id=generate_id("usr"),
            username=username,
            name=(name or "").strip(),
            email=email,
            password_hash=hash_password(password, self.bcrypt_rounds),
            contact_number=contact_number,
            address=address,
            birthday=birthday,
            registration_date=self.clock().isoformat(timespec="seconds"),
            role=role,
        )
        users.append(user)
        await self.collections.save_users(users)

        logger.info("user_registered", user_id=user.id, role=user.role.value)
        self.bus.publish()
        return user

    async def authenticate(self, identifier: str, password: str) -> User:
        """
        Check credentials against the users collection.

        Args:
            identifier: Username or email
            password: Plain password

        Returns:
            Matching user

        Raises:
            AuthenticationError: Unknown user or wrong password
        """
        ident = (identifier or "").strip().lower()
        if not ident:
            raise AuthenticationError("Invalid email or password")
        users = await self.collections.load_users()
        user = next(
            (u for u in users if u.email == ident or u.username.lower() == ident),
            None,
        )
        if user is None or not password:
            raise AuthenticationError("Invalid email or password")

        if user.password_hash:
            if not verify_password(password, user.password_hash):
                raise AuthenticationError("Invalid email or password")
            return user

        if user.legacy_password is None or not secrets.compare_digest(
            user.legacy_password.encode(), password.encode()
        ):
            raise AuthenticationError("Invalid email or password")

        if len(password.encode()) > config.MAX_PASSWORD_BYTES:
            logger.warning("legacy_password_not_upgraded", user_id=user.id)
            return user

        user.password_hash = hash_password(password, self.bcrypt_rounds)
        user.legacy_password = None
        await self.collections.save_users(users)
        logger.info("legacy_password_upgraded", user_id=user.id)
        return user

    async def login(self, identifier: str, password: str) -> User:
        """Authenticate and remember the user as this device's session."""
        user = await self.authenticate(identifier, password)
        session_user = user.model_copy(update={"password_hash": None, "legacy_password": None})
        await self.collections.save_current_user(session_user)
        logger.info("user_logged_in", user_id=user.id)
        self.bus.publish()
        return user

    async def logout(self) -> None:
        await self.collections.clear_session()
        logger.info("user_logged_out")
        self.bus.publish()

    async def current_user(self) -> Optional[User]:
        return await self.collections.load_current_user()

    async def get(self, user_id: str) -> User:
        return self._find(await self.collections.load_users(), user_id)

    async def update_profile(self, user_id: str, **fields) -> User:
        """
        Edit profile fields (name, email, contact_number, address, birthday).

        Raises:
            ValidationError: Unknown field or invalid email
            ConflictError: Email taken by another user
            NotFoundError: Unknown user
        """
        unknown = set(fields) - set(PROFILE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot edit fields: {', '.join(sorted(unknown))}")
        if "email" in fields:
            fields["email"] = validate_email(fields["email"])

        users = await self.collections.load_users()
        user = self._find(users, user_id)
        if "email" in fields and any(
            u.email == fields["email"] and u.id != user_id for u in users
        ):
            raise ConflictError("Email already registered")

        for key, value in fields.items():
            setattr(user, key, value)
        await self.collections.save_users(users)

        current = await self.collections.load_current_user()
        if current is not None and current.id == user_id:
            await self.collections.save_current_user(
                user.model_copy(update={"password_hash": None, "legacy_password": None})
            )

        logger.info("profile_updated", user_id=user_id, fields=sorted(fields))
        self.bus.publish()
        return user

    async def change_password(self, user_id: str, old_password: str, new_password: str) -> None:
        """
        Raises:
            AuthenticationError: old_password does not match
            ValidationError: new_password too short
        """
        self._check_password(new_password)
        user = await self.get(user_id)
        await self.authenticate(user.username or user.email, old_password)

        users = await self.collections.load_users()
        target = self._find(users, user_id)
        target.password_hash = hash_password(new_password, self.bcrypt_rounds)
        target.legacy_password = None
        await self.collections.save_users(users)
        logger.info("password_changed", user_id=user_id)

    async def list_patients(self) -> List[User]:
        return [u for u in await self.collections.load_users() if u.role == UserRole.PATIENT]

    async def delete_user(self, user_id: str) -> None:
        """
        Admin removal of a user record. Appointments are kept.

        Raises:
            NotFoundError: Unknown user
        """
        users = await self.collections.load_users()
        remaining = [u for u in users if u.id != user_id]
        if len(remaining) == len(users):
            raise NotFoundError(f"User '{user_id}' not found")

        await self.collections.save_users(remaining)
        logger.info("user_deleted", user_id=user_id)
        self.bus.publish()
