"""Account lifecycle - signup, verification, password reset, deletion.

Also the credentials login check, profile updates and OAuth identity
linking, because they share the same invariants:

- Credentials login requires a verified, non-deleted user with a matching
  password hash.
- Guest purchases (orders and DOWNLOAD tokens placed with an email before
  any account existed) are claimed by the account that proves ownership
  of that email, inside the same transaction that creates or verifies it.
- Signup and reset roll back entirely when the message cannot be sent.
- Deletion anonymizes; orders survive with a placeholder email.

Each public operation commits exactly once on success and rolls back on
any failure.
"""

import logging
import uuid
from urllib.parse import urlencode

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.auth import (
    check_password,
    hash_password,
    normalize_email,
    validate_email,
    validate_name,
    validate_password_strength,
)
from storefront.core.config import settings
from storefront.core.email import Notification, NotificationSink, TemplateKind
from storefront.core.errors import (
    AccountLinkingBlockedError,
    ConflictError,
    ExternalServiceError,
    InvalidTokenError,
    NotFoundError,
    UnauthorizedError,
)
from storefront.models.token import TokenType
from storefront.models.user import User
from storefront.repositories.account_repository import AccountRepository
from storefront.repositories.order_repository import OrderRepository
from storefront.repositories.user_repository import UserRepository
from storefront.services.token_service import TokenService

logger = logging.getLogger(__name__)

DELETED_USER_NAME = "Deleted User"
_LOGIN_FAILED_MESSAGE = "Incorrect email or password"


def placeholder_email() -> str:
    """Unique, non-deliverable address for an anonymized account."""
    return f"deleted-{uuid.uuid4()}@example.com"


def _email_exists_error() -> ConflictError:
    return ConflictError(
        code="EMAIL_ALREADY_EXISTS",
        message="This email address is already registered",
    )


class AccountService:
    """Account lifecycle manager.

    Args:
        db: Async database session. Each operation commits or rolls back.
        notifier: Sink for verification and reset messages.
        tokens: Token service bound to the same session.
        link_base_url: Base URL for links in messages.
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        notifier: NotificationSink,
        tokens: TokenService | None = None,
        link_base_url: str | None = None,
    ) -> None:
        self._db = db
        self._notifier = notifier
        self._tokens = tokens or TokenService(db)
        self._link_base_url = (link_base_url or settings.frontend_url).rstrip("/")

    # =========================================================================
    # Helpers
    # =========================================================================

    def _link(self, path: str, **query: str) -> str:
        return f"{self._link_base_url}{path}?{urlencode(query)}"

    async def _claim_guest_purchases(self, user: User) -> tuple[int, int]:
        """Re-parent unowned orders and DOWNLOAD tokens for user.email.

        Returns:
            (orders claimed, tokens claimed).
        """
        orders = await OrderRepository.claim_guest_orders(
            self._db, order_email=user.email, user_id=user.id
        )
        tokens = await self._tokens.attach_download_tokens(
            subject_email=user.email, user_id=user.id
        )
        if orders or tokens:
            logger.info(
                "Guest purchases claimed",
                extra={"user_id": str(user.id), "orders": orders, "tokens": tokens},
            )
        return orders, tokens

    async def _send_or_abort(self, notification: Notification, failure: str) -> None:
        if not await self._notifier.send(notification):
            logger.warning(
                "Notification failed, rolling back",
                extra={"template": str(notification.template)},
            )
            raise ExternalServiceError(failure)

    # =========================================================================
    # Signup and verification
    # =========================================================================

    async def sign_up(self, name: str, email: str, password: str) -> User:
        """Register a credentials account and send the verification link.

        Args:
            name: Display name.
            email: Email address.
            password: Plain-text password.

        Returns:
            The new, unverified User.

        Raises:
            ValidationError: Name, email or password out of policy.
            ConflictError: Email already registered to an active account.
            ExternalServiceError: Verification message could not be sent.
        """
        name = validate_name(name)
        email = validate_email(email)
        validate_password_strength(password)

        if await UserRepository.get_by_email(self._db, email) is not None:
            raise _email_exists_error()

        password_hash = hash_password(password)
        try:
            try:
                user = await UserRepository.create(
                    self._db, email=email, name=name, password_hash=password_hash
                )
            except IntegrityError as exc:
                # Concurrent signup with the same email won the race
                raise _email_exists_error() from exc

            await self._claim_guest_purchases(user)
            token = await self._tokens.issue(
                TokenType.VERIFICATION, subject_email=email, user_id=user.id
            )
            await self._send_or_abort(
                Notification(
                    recipient_email=email,
                    template=TemplateKind.VERIFICATION,
                    parameters={"url": self._link("/verify-email", token=token.secret)},
                ),
                "Failed to send verification email",
            )
        except Exception:
            await self._db.rollback()
            raise
        await self._db.commit()

        logger.info("User signed up", extra={"user_id": str(user.id)})
        return user

    async def verify_email(self, secret: str) -> User:
        """Redeem a VERIFICATION token and mark the email verified.

        Raises:
            InvalidTokenError: Token not live, or its user no longer exists.
        """
        try:
            token = await self._tokens.redeem(secret, TokenType.VERIFICATION)
            user = await UserRepository.get_by_email(self._db, token.subject_email or "")
            if user is None:
                raise InvalidTokenError()
            await UserRepository.update(
                self._db, user.id, email_verified=self._tokens.now()
            )
            # Purchases made between signup and verification
            await self._claim_guest_purchases(user)
        except Exception:
            await self._db.rollback()
            raise
        await self._db.commit()

        logger.info("Email verified", extra={"user_id": str(user.id)})
        return user

    # =========================================================================
    # Password reset
    # =========================================================================

    async def request_password_reset(self, email: str) -> None:
        """Send a reset link if an active account exists for ``email``.

        Returns normally whether or not the account exists. At most one
        live RESET token exists per user.

        Raises:
            ExternalServiceError: Reset message could not be sent; nothing
                was persisted.
        """
        email = normalize_email(email)
        user = await UserRepository.get_by_email(self._db, email)
        if user is None:
            logger.info("Password reset requested for unknown email")
            return

        try:
            await self._tokens.revoke_for_user(user.id, type=TokenType.RESET)
            token = await self._tokens.issue(
                TokenType.RESET, subject_email=user.email, user_id=user.id
            )
            await self._send_or_abort(
                Notification(
                    recipient_email=user.email,
                    template=TemplateKind.RESET,
                    parameters={"url": self._link("/reset-password", token=token.secret)},
                ),
                "Failed to send password reset email",
            )
        except Exception:
            await self._db.rollback()
            raise
        await self._db.commit()

    async def confirm_password_reset(self, secret: str, new_password: str) -> User:
        """Redeem a RESET token and set a new password.

        Sessions issued before the reset are revoked.

        Raises:
            ValidationError: New password out of policy.
            InvalidTokenError: Token not live, or its user is gone.
        """
        validate_password_strength(new_password)

        try:
            token = await self._tokens.redeem(secret, TokenType.RESET)
            user = (
                await UserRepository.get_by_id(self._db, token.user_id)
                if token.user_id
                else None
            )
            if user is None or user.is_deleted:
                raise InvalidTokenError()
            # JWT iat has second precision
            now = self._tokens.now().replace(microsecond=0)
            await UserRepository.update(
                self._db,
                user.id,
                password_hash=hash_password(new_password),
                token_invalidated_before=now,
            )
        except Exception:
            await self._db.rollback()
            raise
        await self._db.commit()

        logger.info("Password reset completed", extra={"user_id": str(user.id)})
        return user

    # =========================================================================
    # Deletion
    # =========================================================================

    async def delete_account(self, user_id: uuid.UUID) -> None:
        """Irreversibly anonymize an account.

        Linked identities and every outstanding token are deleted, owned
        orders keep their ids and amounts but get a placeholder email.

        Raises:
            NotFoundError: No active user with this id.
        """
        user = await UserRepository.get_by_id(self._db, user_id)
        if user is None or user.is_deleted:
            raise NotFoundError("User")

        placeholder = placeholder_email()
        try:
            await AccountRepository.delete_for_user(self._db, user.id)
            await self._tokens.revoke_for_user(user.id, subject_email=user.email)
            await OrderRepository.anonymize_order_email(
                self._db, user_id=user.id, placeholder_email=placeholder
            )
            await UserRepository.anonymize(
                self._db,
                user,
                placeholder_email=placeholder,
                placeholder_name=DELETED_USER_NAME,
                deleted_at=self._tokens.now(),
            )
        except Exception:
            await self._db.rollback()
            raise
        await self._db.commit()

        logger.info("Account deleted", extra={"user_id": str(user_id)})

    # =========================================================================
    # Login and profile
    # =========================================================================

    async def authenticate(self, email: str, password: str) -> User:
        """Check credentials for login.

        Raises:
            UnauthorizedError: Generic failure for unknown email, wrong
                password, unverified or deleted account.
        """
        user = await UserRepository.get_by_email(self._db, normalize_email(email))
        # Always run bcrypt so timing doesn't reveal whether the user exists
        password_ok = check_password(password, user.password_hash if user else None)
        if (
            user is None
            or not password_ok
            or user.email_verified is None
            or user.is_deleted
        ):
            raise UnauthorizedError(_LOGIN_FAILED_MESSAGE)
        return user

    async def check_email(self, email: str) -> bool:
        """Whether an active account is registered with ``email``."""
        return await UserRepository.get_by_email(self._db, normalize_email(email)) is not None

    async def update_profile(self, user_id: uuid.UUID, name: str) -> User:
        """Change the display name.

        Raises:
            ValidationError: Name out of policy.
            NotFoundError: No active user with this id.
        """
        name = validate_name(name)
        user = await UserRepository.get_by_id(self._db, user_id)
        if user is None or user.is_deleted:
            raise NotFoundError("User")
        try:
            user = await UserRepository.update(self._db, user_id, name=name)
        except Exception:
            await self._db.rollback()
            raise
        await self._db.commit()
        return user

    # =========================================================================
    # OAuth identities
    # =========================================================================

    async def link_oauth_identity(
        self,
        *,
        provider: str,
        provider_account_id: str,
        email: str,
        email_verified_by_provider: bool,
        name: str | None = None,
        image: str | None = None,
    ) -> tuple[User, bool]:
        """Find or create the user for an external identity.

        Rules:
        1. provider + account id already linked -> returning user
        2. email exists and both sides verified -> link to that user
        3. email exists but either side unverified -> reject (pre-hijack)
        4. no matching email -> new user, implicitly verified when the
           provider verified the email, claiming guest purchases

        Returns:
            Tuple of (User, created).

        Raises:
            AccountLinkingBlockedError: Rule 3.
        """
        email = normalize_email(email)

        existing_account = await AccountRepository.get_by_provider_and_account_id(
            self._db, provider, provider_account_id
        )
        if existing_account:
            user = await UserRepository.get_by_id(self._db, existing_account.user_id)
            if user and not user.is_deleted:
                logger.info(
                    "Returning OAuth user",
                    extra={"user_id": str(user.id), "provider": provider},
                )
                return user, False

        try:
            existing_user = await UserRepository.get_by_email(self._db, email)
            if existing_user:
                # Security: link only when BOTH sides have verified the email
                if not (
                    email_verified_by_provider
                    and existing_user.email_verified is not None
                ):
                    logger.warning(
                        "OAuth account linking blocked by email verification",
                        extra={
                            "provider": provider,
                            "provider_verified": email_verified_by_provider,
                            "existing_verified": existing_user.email_verified
                            is not None,
                        },
                    )
                    raise AccountLinkingBlockedError()

                await AccountRepository.create(
                    self._db,
                    user_id=existing_user.id,
                    type="oauth",
                    provider=provider,
                    provider_account_id=provider_account_id,
                )
                user, created = existing_user, False
            else:
                user = await UserRepository.create(
                    self._db,
                    email=email,
                    name=name,
                    image=image,
                    email_verified=(
                        self._tokens.now() if email_verified_by_provider else None
                    ),
                )
                await AccountRepository.create(
                    self._db,
                    user_id=user.id,
                    type="oauth",
                    provider=provider,
                    provider_account_id=provider_account_id,
                )
                if email_verified_by_provider:
                    await self._claim_guest_purchases(user)
                created = True
        except Exception:
            await self._db.rollback()
            raise
        await self._db.commit()

        logger.info(
            "OAuth identity resolved",
            extra={"user_id": str(user.id), "provider": provider, "created": created},
        )
        return user, created
