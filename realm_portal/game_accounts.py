"""
Game Account Service
====================
Website-side game account operations: provisioning and claiming through the
admin panel, password changes, deletion.

Create and claim run behind the TimingSafeGate so that every branch takes the
same minimum time.
"""

import re
from typing import Optional

import structlog
from pydantic import BaseModel

from .admin_client import AdminClient
from .directory import DirectoryError, UserDirectory
from .exceptions import ConfigurationError, UpstreamError
from .models import GameAccount
from .sanitizer import CONFIGURATION_ERROR, ErrorSanitizer
from .store import GameAccountStore
from .timing_gate import TimingSafeGate

logger = structlog.get_logger(__name__)

USERNAME_MIN = 3
USERNAME_MAX = 17
PASSWORD_MIN = 6
PASSWORD_MAX = 16
_USERNAME_RE = re.compile(r"[a-zA-Z0-9]+")

NOT_AUTHENTICATED = "Not authenticated"
ALREADY_HAS_ACCOUNT = "You already have a game account"
ALREADY_LINKED = "You already have a game account linked"
USERNAME_TAKEN = "Username is already taken"
ACCOUNT_CLAIMED = "This game account is already linked to another website account"
NO_ACCOUNT = "You do not have a game account"
USERNAME_LENGTH = f"Username must be between {USERNAME_MIN} and {USERNAME_MAX} characters"
USERNAME_CHARSET = "Username can only contain letters and numbers"
PASSWORD_LENGTH = f"Password must be between {PASSWORD_MIN} and {PASSWORD_MAX} characters"

GET_FAILED = "Failed to get game account"
CREATE_FAILED = "Failed to create game account"
CLAIM_FAILED = "Invalid username or password"
CLAIM_UNEXPECTED = "Failed to claim game account"
PASSWORD_FAILED = "Failed to change password"
DELETE_FAILED = "Failed to delete game account"
DELETE_USER_FAILED = "Failed to delete account. Please try again or contact support."


class GameAccountInfo(BaseModel):
    id: str
    game_username: str
    created_at: str

    @classmethod
    def from_model(cls, account: GameAccount) -> "GameAccountInfo":
        return cls(
            id=account.id,
            game_username=account.game_username,
            created_at=account.created_at.isoformat(),
        )


class GameAccountResult(BaseModel):
    success: bool
    error: Optional[str] = None
    game_account: Optional[GameAccountInfo] = None

    @classmethod
    def fail(cls, error: str) -> "GameAccountResult":
        return cls(success=False, error=error)

    @classmethod
    def ok(cls, account: Optional[GameAccount] = None) -> "GameAccountResult":
        info = GameAccountInfo.from_model(account) if account is not None else None
        return cls(success=True, game_account=info)


def validate_credentials(username: str, password: str) -> Optional[str]:
    """Return a user-facing validation error, or None if the input is acceptable."""
    if len(username) < USERNAME_MIN or len(username) > USERNAME_MAX:
        return USERNAME_LENGTH
    if not _USERNAME_RE.fullmatch(username):
        return USERNAME_CHARSET
    return validate_password(password)


def validate_password(password: str) -> Optional[str]:
    if len(password) < PASSWORD_MIN or len(password) > PASSWORD_MAX:
        return PASSWORD_LENGTH
    return None


class GameAccountService:
    """Game account operations for an authenticated website user."""

    def __init__(
        self,
        directory: UserDirectory,
        store: GameAccountStore,
        admin: AdminClient,
        gate: TimingSafeGate,
        sanitizer: Optional[ErrorSanitizer] = None,
    ):
        self.directory = directory
        self.store = store
        self.admin = admin
        self.gate = gate
        self.sanitizer = sanitizer or ErrorSanitizer()

    async def _user_id(self, access_token: Optional[str]) -> Optional[str]:
        if not access_token:
            return None
        user = await self.directory.get_user(access_token)
        return user.user_id if user else None

    async def get_game_account(self, access_token: str) -> GameAccountResult:
        try:
            user_id = await self._user_id(access_token)
            if not user_id:
                return GameAccountResult.fail(NOT_AUTHENTICATED)
            return GameAccountResult.ok(await self.store.get_by_user(user_id))
        except Exception:
            logger.exception("get_game_account_failed")
            return GameAccountResult.fail(GET_FAILED)

    async def create_game_account(self, access_token: str, username: str, password: str) -> GameAccountResult:
        """Provision a new game account. Every outcome takes at least the gate's floor."""
        return await self.gate.run(self._create_game_account, access_token, username, password)

    async def _create_game_account(self, access_token, username, password) -> GameAccountResult:
        try:
            user_id = await self._user_id(access_token)
            if not user_id:
                return GameAccountResult.fail(NOT_AUTHENTICATED)

            if await self.store.get_by_user(user_id):
                return GameAccountResult.fail(ALREADY_HAS_ACCOUNT)

            username = username.lower()
            if await self.store.get_by_username(username):
                return GameAccountResult.fail(USERNAME_TAKEN)

            error = validate_credentials(username, password)
            if error:
                return GameAccountResult.fail(error)

            try:
                await self.admin.create_account(username, password)
            except ConfigurationError:
                return GameAccountResult.fail(CONFIGURATION_ERROR)
            except UpstreamError as e:
                return GameAccountResult.fail(self.sanitizer.sanitize(e.raw_error, CREATE_FAILED))

            account = await self.store.create(user_id, username)
            logger.info("game_account_created", user_id=user_id, account_id=account.id)
            return GameAccountResult.ok(account)
        except Exception:
            logger.exception("create_game_account_failed")
            return GameAccountResult.fail(CREATE_FAILED)

    async def claim_game_account(self, access_token: str, username: str, password: str) -> GameAccountResult:
        """Link a pre-existing game account once the admin panel verifies its credentials."""
        return await self.gate.run(self._claim_game_account, access_token, username, password)

    async def _claim_game_account(self, access_token, username, password) -> GameAccountResult:
        try:
            user_id = await self._user_id(access_token)
            if not user_id:
                return GameAccountResult.fail(NOT_AUTHENTICATED)

            if await self.store.get_by_user(user_id):
                return GameAccountResult.fail(ALREADY_LINKED)

            username = username.lower()
            if await self.store.get_by_username(username):
                return GameAccountResult.fail(ACCOUNT_CLAIMED)

            try:
                await self.admin.verify_account(username, password)
            except ConfigurationError:
                return GameAccountResult.fail(CONFIGURATION_ERROR)
            except UpstreamError as e:
                return GameAccountResult.fail(self.sanitizer.sanitize(e.raw_error, CLAIM_FAILED))

            account = await self.store.create(user_id, username)
            logger.info("game_account_claimed", user_id=user_id, account_id=account.id)
            return GameAccountResult.ok(account)
        except Exception:
            logger.exception("claim_game_account_failed")
            return GameAccountResult.fail(CLAIM_UNEXPECTED)

    async def change_game_password(self, access_token: str, new_password: str) -> GameAccountResult:
        try:
            user_id = await self._user_id(access_token)
            if not user_id:
                return GameAccountResult.fail(NOT_AUTHENTICATED)

            account = await self.store.get_by_user(user_id)
            if not account:
                return GameAccountResult.fail(NO_ACCOUNT)

            error = validate_password(new_password)
            if error:
                return GameAccountResult.fail(error)

            try:
                await self.admin.change_password(account.game_username, new_password)
            except ConfigurationError:
                return GameAccountResult.fail(CONFIGURATION_ERROR)
            except UpstreamError as e:
                return GameAccountResult.fail(self.sanitizer.sanitize(e.raw_error, PASSWORD_FAILED))

            logger.info("game_password_changed", user_id=user_id, account_id=account.id)
            return GameAccountResult.ok(account)
        except Exception:
            logger.exception("change_game_password_failed")
            return GameAccountResult.fail(PASSWORD_FAILED)

    async def delete_game_account(self, access_token: str) -> GameAccountResult:
        try:
            user_id = await self._user_id(access_token)
            if not user_id:
                return GameAccountResult.fail(NOT_AUTHENTICATED)

            account = await self.store.get_by_user(user_id)
            if not account:
                return GameAccountResult.fail(NO_ACCOUNT)

            try:
                await self.admin.delete_account(account.game_username)
            except ConfigurationError:
                return GameAccountResult.fail(CONFIGURATION_ERROR)
            except UpstreamError as e:
                return GameAccountResult.fail(self.sanitizer.sanitize(e.raw_error, DELETE_FAILED))

            await self.store.delete(account.id)
            logger.info("game_account_deleted", user_id=user_id, account_id=account.id)
            return GameAccountResult.ok()
        except Exception:
            logger.exception("delete_game_account_failed")
            return GameAccountResult.fail(DELETE_FAILED)

    async def delete_user_account(self, access_token: str) -> GameAccountResult:
        """
        Delete the website account and any linked game account.

        The game-server deletion is best effort: failures are logged and the
        local link and directory user are removed regardless.
        """
        try:
            user_id = await self._user_id(access_token)
            if not user_id:
                return GameAccountResult.fail(NOT_AUTHENTICATED)

            account = await self.store.get_by_user(user_id)
            if account:
                try:
                    await self.admin.delete_account(account.game_username)
                except ConfigurationError:
                    logger.warning("delete_user_skipped_game_server", user_id=user_id)
                except UpstreamError as e:
                    logger.error(
                        "delete_user_game_server_failed",
                        user_id=user_id,
                        status=e.status_code,
                        error=e.raw_error or e.message,
                    )
                await self.store.delete(account.id)

            try:
                await self.directory.delete_user(user_id)
            except DirectoryError as e:
                logger.error("delete_directory_user_failed", user_id=user_id, error=str(e))
                return GameAccountResult.fail(DELETE_USER_FAILED)

            logger.info("user_account_deleted", user_id=user_id)
            return GameAccountResult.ok()
        except Exception:
            logger.exception("delete_user_account_failed")
            return GameAccountResult.fail("Failed to delete account")
