"""Session flow around the risk engine.

Collects a fingerprint, scores it against history that does not yet contain
it, records it, then gates login/registration on the result. UI feedback is
returned as `Notice` values rather than rendered.

Usage:

  service = AuthService.from_config(load_config("config/dev.yaml"), collector)
  result = service.initialize()
  result = service.login("alice@example.com", remember_me=True)
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Literal

from pydantic import ValidationError

from common.config import AppConfig
from common.logging_utils import get_logger
from common.metrics import Metric, emit_metric
from common.models import DeviceFingerprint, FraudAnalysis, UserSession
from devices.collector import CollectorError, FingerprintCollector
from devices.history import FingerprintHistory
from devices.store import USER_KEY, KeyValueStore, StoreError, build_store
from devices.trust import DeviceTrustManager
from risk.behavior import BehaviorSignalProvider, StaticBehaviorProvider
from risk.risk_rules import analyze


logger = get_logger(__name__)


@dataclass(frozen=True)
class Notice:
    title: str
    description: str
    variant: Literal["default", "destructive"] = "default"


@dataclass(frozen=True)
class AuthResult:
    ok: bool
    notice: Notice | None = None
    user: UserSession | None = None
    error: str | None = None


def _now_ms() -> int:
    return int(time.time() * 1000)


def _new_user_id() -> str:
    return uuid.uuid4().hex[:9]


class AuthService:
    def __init__(
        self,
        collector: FingerprintCollector,
        history: FingerprintHistory,
        trust: DeviceTrustManager,
        store: KeyValueStore,
        *,
        rule_cfg: dict[str, Any] | None = None,
        behavior: BehaviorSignalProvider | None = None,
        clock: Callable[[], int] = _now_ms,
        id_factory: Callable[[], str] = _new_user_id,
    ) -> None:
        self.collector = collector
        self.history = history
        self.trust = trust
        self.store = store
        self.rule_cfg = rule_cfg
        self.behavior = behavior if behavior is not None else StaticBehaviorProvider()
        self._clock = clock
        self._id_factory = id_factory

        self.device_fingerprint: DeviceFingerprint | None = None
        self.fraud_analysis: FraudAnalysis | None = None
        self.user: UserSession | None = None
        self._recorded_key: str | None = None

    @classmethod
    def from_config(
        cls,
        cfg: AppConfig,
        collector: FingerprintCollector,
        *,
        store: KeyValueStore | None = None,
    ) -> "AuthService":
        store = store if store is not None else build_store(cfg.store)
        return cls(
            collector,
            FingerprintHistory(store, max_entries=cfg.history.max_entries, scope=cfg.history.scope),
            DeviceTrustManager(store),
            store,
            rule_cfg=cfg.risk.as_dict(),
            behavior=StaticBehaviorProvider.from_config(cfg.behavior),
        )

    @property
    def risk_is_high(self) -> bool:
        return self.fraud_analysis is not None and self.fraud_analysis.risk_level == "high"

    def _trust_label(self) -> str:
        if self.fraud_analysis is None:
            return "unknown"
        return f"{self.fraud_analysis.device_trust}%"

    def _current_device_trusted(self) -> bool:
        if self.device_fingerprint is None:
            return False
        return self.trust.is_trusted(self.device_fingerprint.visitor_id)

    def _load_saved_user(self) -> UserSession | None:
        raw = self.store.get_json(USER_KEY)
        if raw is None:
            return None
        try:
            return UserSession.model_validate(raw)
        except ValidationError as exc:
            logger.warning("ignoring malformed saved session errors=%s", exc.error_count())
            return None

    def _save_user(self, user: UserSession) -> None:
        self.store.set_json(USER_KEY, user.to_wire())

    def _revert_trust(self, visitor_id: str) -> None:
        try:
            self.trust.untrust(visitor_id)
        except StoreError as exc:
            logger.error("could not revert trust visitor_id=%s: %s", visitor_id, exc)

    def _collect_and_score(self, identity: str | None) -> tuple[DeviceFingerprint, FraudAnalysis]:
        return self._score_and_record(self.collector.get_fingerprint(), identity)

    def _rescore_for_identity(self, email: str) -> None:
        # With identity-scoped history a sample collected before sign-in sits
        # in another log; score it again against this account's log.
        if self.device_fingerprint is None or not email.strip():
            return
        if self.history.key_for(email) == self._recorded_key:
            return
        self._score_and_record(self.device_fingerprint, email)

    def _score_and_record(
        self, fingerprint: DeviceFingerprint, identity: str | None
    ) -> tuple[DeviceFingerprint, FraudAnalysis]:
        previous = self.history.load(identity)
        analysis = analyze(
            fingerprint,
            previous,
            now_ms=self._clock(),
            cfg=self.rule_cfg,
            behavior=self.behavior,
        )
        self.history.record(fingerprint, identity)
        self._recorded_key = self.history.key_for(identity)

        logger.info(
            "analysis visitor_id=%s risk_score=%s risk_level=%s factors=%s history=%s",
            fingerprint.visitor_id,
            analysis.risk_score,
            analysis.risk_level,
            len(analysis.factors),
            len(previous),
        )
        emit_metric(
            Metric("risk_score", analysis.risk_score, unit="Points", dimensions={"risk_level": analysis.risk_level})
        )

        self.device_fingerprint = fingerprint
        self.fraud_analysis = analysis
        return fingerprint, analysis

    def initialize(self) -> AuthResult:
        """Collect and score the current device, then restore any saved session.

        A collector or store failure disables fingerprint-dependent features
        (no fingerprint, no analysis, no restored session) instead of raising.
        """

        try:
            self.collector.initialize()
            saved = self._load_saved_user()
            fingerprint, analysis = self._collect_and_score(saved.email if saved else None)
        except (CollectorError, StoreError) as exc:
            logger.error("initialization failed: %s", exc)
            self.device_fingerprint = None
            self.fraud_analysis = None
            self._recorded_key = None
            return AuthResult(
                ok=False,
                notice=Notice(
                    "Initialization Error",
                    "Failed to initialize security features. Some functionality may be limited.",
                    "destructive",
                ),
                error=str(exc),
            )

        if saved is None:
            return AuthResult(ok=True)

        self.user = saved.model_copy(
            update={
                "device_fingerprint": fingerprint,
                "fraud_analysis": analysis,
                "trusted_devices": self.trust.trusted_devices(),
            }
        )

        notice = None
        if not self.trust.is_trusted(fingerprint.visitor_id) and analysis.risk_level == "high":
            logger.warning("untrusted high-risk device visitor_id=%s", fingerprint.visitor_id)
            notice = Notice(
                "Security Alert",
                "Unrecognized device detected. Please verify your identity.",
                "destructive",
            )
        return AuthResult(ok=True, notice=notice, user=self.user)

    def login(self, email: str, remember_me: bool = False) -> AuthResult:
        """Start a session; refused while the current device scores high risk.

        Only a `remember_me` session is written to the store (and so survives
        a restart and enables biometric login).
        """

        try:
            self._rescore_for_identity(email)
        except StoreError as exc:
            logger.error("login failed: %s", exc)
            return AuthResult(
                ok=False,
                notice=Notice("Login Failed", "An error occurred during login. Please try again.", "destructive"),
                error=str(exc),
            )

        if self.risk_is_high:
            logger.warning("login refused risk_level=high email=%s", email)
            return AuthResult(
                ok=False,
                notice=Notice(
                    "Security Check Required",
                    "Additional verification needed due to suspicious activity.",
                    "destructive",
                ),
            )

        try:
            user = UserSession(
                id=self._id_factory(),
                name=email.strip().split("@")[0],
                email=email,
                device_fingerprint=self.device_fingerprint,
                fraud_analysis=self.fraud_analysis,
                trusted_devices=self.trust.trusted_devices(),
            )
            if remember_me:
                self._save_user(user)
        except (ValidationError, StoreError) as exc:
            logger.error("login failed: %s", exc)
            return AuthResult(
                ok=False,
                notice=Notice("Login Failed", "An error occurred during login. Please try again.", "destructive"),
                error=str(exc),
            )

        self.user = user
        logger.info("login ok user_id=%s remember_me=%s", user.id, remember_me)
        return AuthResult(
            ok=True,
            notice=Notice("Welcome back!", f"Login successful. Device trust score: {self._trust_label()}"),
            user=user,
        )

    def register(self, name: str, email: str) -> AuthResult:
        """Create and persist a session; the registering device is trusted automatically.

        If the session cannot be saved, a device trusted by this call is
        untrusted again so a failed registration leaves the trusted set as it was.
        """

        newly_trusted: str | None = None
        try:
            self._rescore_for_identity(email)

            trusted: list[str] = []
            if self.device_fingerprint is not None:
                visitor_id = self.device_fingerprint.visitor_id
                if not self.trust.is_trusted(visitor_id):
                    self.trust.trust(visitor_id)
                    newly_trusted = visitor_id
                trusted = [visitor_id]

            user = UserSession(
                id=self._id_factory(),
                name=name,
                email=email,
                device_fingerprint=self.device_fingerprint,
                fraud_analysis=self.fraud_analysis,
                trusted_devices=trusted,
            )
            self._save_user(user)
        except (ValidationError, StoreError) as exc:
            logger.error("registration failed: %s", exc)
            if newly_trusted is not None:
                self._revert_trust(newly_trusted)
            return AuthResult(
                ok=False,
                notice=Notice(
                    "Registration Failed",
                    "An error occurred during registration. Please try again.",
                    "destructive",
                ),
                error=str(exc),
            )

        self.user = user
        logger.info("registered user_id=%s trusted=%s", user.id, len(trusted))
        return AuthResult(
            ok=True,
            notice=Notice("Account created!", "Welcome to FlowAuth. Your device has been automatically trusted."),
            user=user,
        )

    def biometric_login(self) -> AuthResult:
        """Resume the saved session on a recognized device."""

        saved = self._load_saved_user()
        if saved is None:
            return AuthResult(
                ok=False,
                notice=Notice("No account found", "Please register first to use biometric login.", "destructive"),
            )

        if not self._current_device_trusted() and self.risk_is_high:
            logger.warning("biometric login blocked user_id=%s", saved.id)
            return AuthResult(
                ok=False,
                notice=Notice(
                    "Biometric Login Blocked",
                    "Device not recognized. Please use email login for verification.",
                    "destructive",
                ),
            )

        self.user = saved.model_copy(
            update={
                "device_fingerprint": self.device_fingerprint,
                "fraud_analysis": self.fraud_analysis,
                "trusted_devices": self.trust.trusted_devices(),
            }
        )
        return AuthResult(
            ok=True,
            notice=Notice(
                "Biometric login successful!",
                f"Authenticated via device fingerprint. Trust score: {self._trust_label()}",
            ),
            user=self.user,
        )

    def trust_current_device(self) -> AuthResult:
        if self.device_fingerprint is None or self.user is None:
            return AuthResult(ok=False, user=self.user)

        self.trust.trust(self.device_fingerprint.visitor_id)
        self.user.trusted_devices = self.trust.trusted_devices()
        return AuthResult(
            ok=True,
            notice=Notice("Device Trusted", "This device has been added to your trusted devices list."),
            user=self.user,
        )

    def untrust_device(self, visitor_id: str) -> AuthResult:
        self.trust.untrust(visitor_id)
        if self.user is None:
            return AuthResult(ok=True)

        self.user.trusted_devices = self.trust.trusted_devices()
        return AuthResult(
            ok=True,
            notice=Notice("Device Untrusted", "Device has been removed from your trusted devices list."),
            user=self.user,
        )

    def refresh_fingerprint(self) -> AuthResult:
        try:
            fingerprint, analysis = self._collect_and_score(self.user.email if self.user else None)
        except (CollectorError, StoreError) as exc:
            logger.error("fingerprint refresh failed: %s", exc)
            return AuthResult(
                ok=False,
                notice=Notice("Update Failed", "Failed to refresh device fingerprint.", "destructive"),
                user=self.user,
                error=str(exc),
            )

        if self.user is not None:
            self.user = self.user.model_copy(
                update={"device_fingerprint": fingerprint, "fraud_analysis": analysis}
            )
        return AuthResult(
            ok=True,
            notice=Notice("Fingerprint Updated", "Device fingerprint has been refreshed."),
            user=self.user,
        )

    def logout(self) -> AuthResult:
        self.user = None
        self.store.delete(USER_KEY)
        return AuthResult(ok=True, notice=Notice("Logged out", "You've been successfully logged out."))
