"""
Subscription state and upgrade detection.

An upgrade is confirmed by a billing webhook some time after checkout, so
after the user pays the monitor polls the plan until it moves, then
refreshes it once more for the UI.
"""

from typing import Any, Dict, Optional

from connectors.backend_client import BackendClient
from core.reconciler import PollOptions, PollReconciler
from core.types import BackendError
from error_handler import ErrorClassifier, ErrorKind, friendly_message
from logger import get_logger

logger = get_logger(__name__)

TARGET = "subscription"
FETCH_PLAN = "fetch_plan"
CHECKOUT = "checkout"
BILLING_PORTAL = "billing_portal"
SET_MODEL = "set_model"
CANCEL_SUBSCRIPTION = "cancel_subscription"
REACTIVATE_SUBSCRIPTION = "reactivate_subscription"

SUCCESS_URL = "rainy-day://billing/success"
CANCEL_URL = "rainy-day://billing/cancel"
PORTAL_RETURN_URL = "rainy-day://settings"


class SubscriptionMonitor:
    """
    Current subscription plan with post-checkout reconciliation.

    Usage:
        monitor = SubscriptionMonitor(backend)
        await monitor.fetch_plan()
        url = await monitor.start_checkout("pro")
        upgraded = await monitor.await_upgrade("pro")
    """

    def __init__(self, backend: BackendClient, reconciler: Optional[PollReconciler] = None):
        self.backend = backend
        self.reconciler = reconciler or PollReconciler()
        self.plan: Optional[str] = None
        self.plan_name: Optional[str] = None
        self.details: Dict[str, Any] = {}
        self.selected_model: Optional[str] = None
        self.cancel_at_period_end = False
        self.limits: Optional[Dict[str, Any]] = None
        self.error: Optional[str] = None

    async def _current_plan(self) -> str:
        response = await self.backend.get("/billing/plan")
        response.raise_for_error("Failed to fetch plan")
        return (response.data or {}).get('plan', 'free')

    async def fetch_plan(self) -> Optional[str]:
        """Reload the plan into self.plan; on failure set self.error and keep the old value"""
        response = await self.backend.get("/billing/plan")
        if not response.ok:
            classification = ErrorClassifier.classify_status(response.status, response.error)
            self.error = classification.friendly_message(FETCH_PLAN)
            logger.warning(f"Fetching plan failed: {classification.technical_details}")
            return self.plan

        data = response.data or {}
        self.plan = data.get('plan', 'free')
        self.plan_name = data.get('planName')
        self.selected_model = data.get('selectedModel')
        self.cancel_at_period_end = bool(data.get('cancelAtPeriodEnd', False))
        self.details = data
        self.error = None
        return self.plan

    async def await_upgrade(self, expected: str = "pro", options: Optional[PollOptions] = None) -> bool:
        """
        Poll until the plan leaves its current value or equals expected.

        Starting again cancels a wait that is still running. The plan is
        refreshed once when the wait ends, whatever the outcome.

        Returns:
            True when the upgrade was observed, False on timeout or cancel
        """
        if self.plan is None:
            await self.fetch_plan()
        baseline = self.plan or 'free'
        logger.info(f"Waiting for subscription to move from {baseline} (expecting {expected})")
        return await self.reconciler.reconcile(
            TARGET,
            self._current_plan,
            baseline,
            expected=expected,
            options=options,
            on_refresh=self.fetch_plan,
        )

    def cancel_wait(self) -> bool:
        """Stop waiting for an upgrade (e.g. the screen was closed)"""
        return self.reconciler.cancel(TARGET)

    async def _billing_call(self, method: str, path: str, body: Any, operation: str, fallback: str) -> Dict[str, Any]:
        response = await self.backend.request(method, path, body)
        if not response.ok:
            classification = ErrorClassifier.classify_status(response.status, response.error)
            self.error = classification.friendly_message(operation)
            logger.warning(f"{operation} failed: {classification.technical_details}")
            raise BackendError(response.error_message(fallback), response.status)
        self.error = None
        return response.data if isinstance(response.data, dict) else {}

    async def start_checkout(self, plan: str) -> str:
        """
        Create a checkout session.

        Returns:
            URL of the hosted checkout page

        Raises:
            BackendError: the session could not be created
        """
        data = await self._billing_call("POST", "/billing/checkout", {
            'plan': plan,
            'successUrl': SUCCESS_URL,
            'cancelUrl': CANCEL_URL,
        }, CHECKOUT, "Failed to create checkout session")
        if not data.get('url'):
            self.error = friendly_message(ErrorKind.UNKNOWN, CHECKOUT)
            raise BackendError("Checkout session has no URL")
        return data['url']

    async def open_billing_portal(self) -> str:
        """URL of the billing portal page"""
        data = await self._billing_call(
            "POST", "/billing/portal", {'returnUrl': PORTAL_RETURN_URL},
            BILLING_PORTAL, "Failed to open billing portal",
        )
        if not data.get('url'):
            self.error = friendly_message(ErrorKind.UNKNOWN, BILLING_PORTAL)
            raise BackendError("Billing portal has no URL")
        return data['url']

    async def set_model(self, model_id: str):
        await self._billing_call(
            "PUT", "/billing/model", {'model': model_id},
            SET_MODEL, "Failed to update model",
        )
        self.selected_model = model_id

    async def cancel_subscription(self):
        """End the paid plan at the close of the current period"""
        await self._billing_call(
            "POST", "/billing/cancel", None,
            CANCEL_SUBSCRIPTION, "Failed to cancel subscription",
        )
        self.cancel_at_period_end = True

    async def reactivate_subscription(self):
        await self._billing_call(
            "POST", "/billing/reactivate", None,
            REACTIVATE_SUBSCRIPTION, "Failed to reactivate subscription",
        )
        self.cancel_at_period_end = False

    async def fetch_limits(self) -> Optional[Dict[str, Any]]:
        """Usage limits of the current plan; keeps the old value on failure"""
        response = await self.backend.get("/billing/limits")
        if response.ok and isinstance(response.data, dict):
            self.limits = response.data
        else:
            logger.warning(f"Fetching usage limits failed: {response.error_message('no data')}")
        return self.limits
