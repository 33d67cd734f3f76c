"""
MoMo Payment Service

Creates signed MoMo wallet payment URLs for service packages and processes the
provider callback, which activates the purchased subscription.

The callback carries no user session: package and driver travel in extraData
("packageId=<id>&driverId=<id>"), protected by the HMAC signature.
"""

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional

import aiohttp
from aiohttp import web
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config.settings import Settings
from db.dal import package_dal, payment_dal, subscription_dal
from db.models import DriverSubscription, Payment, PaymentStatus, ServicePackage
from evswap.exceptions import (
    AccessDeniedError,
    ConflictError,
    EVSwapError,
    NotFoundError,
    PaymentCallbackError,
    PaymentGatewayError,
    SecurityViolationError,
)
from evswap.services.subscription import SubscriptionCoreService
from evswap.utils import momo_signature
from evswap.utils.transaction_context import TransactionContext

PAYMENT_METHOD_MOMO = "MOMO"


class MoMoService:
    def __init__(
        self,
        settings: Settings,
        subscription_service: SubscriptionCoreService,
    ):
        self.settings = settings
        self.subscription_service = subscription_service
        self.configured = settings.momo_configured
        self._http_session: Optional[aiohttp.ClientSession] = None
        if not self.configured:
            logging.warning("MoMo credentials not provided. MoMo payments disabled")

    async def _get_http_session(self) -> aiohttp.ClientSession:
        if self._http_session is None or self._http_session.closed:
            timeout = aiohttp.ClientTimeout(total=self.settings.MOMO_REQUEST_TIMEOUT_SECONDS)
            self._http_session = aiohttp.ClientSession(timeout=timeout)
        return self._http_session

    async def close(self):
        """Close the underlying aiohttp session if it was opened."""
        if self._http_session and not self._http_session.closed:
            try:
                await self._http_session.close()
                logging.info("MoMo HTTP session closed.")
            except Exception as e:
                logging.warning(f"Failed to close MoMo HTTP session: {e}")
        self._http_session = None

    async def _post_to_gateway(self, body: Dict[str, Any]) -> Dict[str, Any]:
        http = await self._get_http_session()
        async with http.post(self.settings.MOMO_ENDPOINT, json=body) as response:
            data = await response.json(content_type=None)
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected MoMo response body: {data!r}")
        return data

    # ==================== Payment URL ====================

    async def create_payment_url(
        self,
        session: AsyncSession,
        package_id: int,
        driver_id: int,
        redirect_url: Optional[str] = None,
    ) -> Dict[str, str]:
        """
        Create a MoMo payment for a service package.

        Returns:
            {"paymentUrl", "orderId", "requestId", "message"}

        Raises:
            NotFoundError: unknown package
            ConflictError: driver still has an active subscription with swaps left
            PaymentGatewayError: MoMo disabled, unreachable or refused the request
        """
        package = await package_dal.get_package_by_id(session, package_id)
        if not package:
            raise NotFoundError(f"Service package not found with id: {package_id}")

        active = await self.subscription_service.get_active_subscription(session, driver_id)
        if active and active.remaining_swaps > 0:
            raise ConflictError(
                f"Driver already has an ACTIVE subscription with {active.remaining_swaps} swaps remaining "
                f"(expires {active.end_date}). Use the remaining swaps before buying a new package."
            )

        if not self.configured:
            raise PaymentGatewayError("MoMo payments are not configured")

        order_id = momo_signature.generate_order_id()
        request_id = momo_signature.generate_request_id()
        amount = int(package.price)
        order_info = f"Payment for service package: {package.name}"
        final_redirect_url = (redirect_url or "").strip() or self.settings.MOMO_REDIRECT_URL
        extra_data = momo_signature.build_extra_data(package.id, driver_id)

        signature_params = {
            "accessKey": self.settings.MOMO_ACCESS_KEY,
            "amount": amount,
            "extraData": extra_data,
            "ipnUrl": self.settings.MOMO_IPN_URL,
            "orderId": order_id,
            "orderInfo": order_info,
            "partnerCode": self.settings.MOMO_PARTNER_CODE,
            "redirectUrl": final_redirect_url,
            "requestId": request_id,
            "requestType": self.settings.MOMO_REQUEST_TYPE,
        }
        signature = momo_signature.sign(
            signature_params, momo_signature.CREATE_SIGNATURE_FIELDS, self.settings.MOMO_SECRET_KEY
        )

        body = {
            "partnerCode": self.settings.MOMO_PARTNER_CODE,
            "partnerName": self.settings.MOMO_PARTNER_NAME,
            "storeId": self.settings.MOMO_STORE_ID,
            "requestId": request_id,
            "amount": amount,
            "orderId": order_id,
            "orderInfo": order_info,
            "redirectUrl": final_redirect_url,
            "ipnUrl": self.settings.MOMO_IPN_URL,
            "lang": self.settings.MOMO_LANG,
            "extraData": extra_data,
            "requestType": self.settings.MOMO_REQUEST_TYPE,
            "signature": signature,
        }

        try:
            response = await self._post_to_gateway(body)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logging.error(f"MoMo payment creation failed for order {order_id}: {e}", exc_info=True)
            raise PaymentGatewayError("Could not create MoMo payment URL") from e

        if response.get("resultCode") != momo_signature.SUCCESS_RESULT_CODE or not response.get("payUrl"):
            logging.error(f"MoMo API error for order {order_id}: {response}")
            raise PaymentGatewayError(
                f"MoMo API error: resultCode={response.get('resultCode')}, message={response.get('message')}"
            )

        logging.info(
            f"MoMo payment URL created for package {package.id}: {package.name} - {amount} VND "
            f"(driver {driver_id}, order {order_id})"
        )
        return {
            "paymentUrl": response["payUrl"],
            "orderId": order_id,
            "requestId": request_id,
            "message": "Redirect user to this URL to complete payment",
        }

    # ==================== Callback ====================

    def verify_callback_signature(self, params: Mapping[str, Any]) -> bool:
        signature_params = dict(params)
        signature_params["accessKey"] = self.settings.MOMO_ACCESS_KEY
        if signature_params.get("extraData") is None:
            signature_params["extraData"] = ""
        expected = momo_signature.sign(
            signature_params, momo_signature.CALLBACK_SIGNATURE_FIELDS, self.settings.MOMO_SECRET_KEY or ""
        )
        return momo_signature.signatures_match(expected, params.get("signature"))

    async def handle_payment_callback(
        self,
        session: AsyncSession,
        params: Mapping[str, Any],
    ) -> Dict[str, Any]:
        """
        Process a MoMo callback (redirect return or IPN).

        Signature is checked before anything else, whatever the resultCode.
        On success the subscription and a COMPLETED payment are written in the
        caller's transaction. A repeated callback for a recorded order only
        reports the existing result.

        Raises:
            SecurityViolationError: signature mismatch
            PaymentCallbackError: packageId/driverId missing or not numeric
            NotFoundError: unknown package
        """
        order_id = params.get("orderId")
        result_code = params.get("resultCode")
        message = params.get("message")
        logging.info(f"MoMo callback received: orderId={order_id}, resultCode={result_code}, message={message}")

        if not self.verify_callback_signature(params):
            logging.critical(
                f"SECURITY: invalid MoMo signature for orderId={order_id}, resultCode={result_code}. "
                "Possible forged callback"
            )
            raise SecurityViolationError("Invalid MoMo signature")

        extra_data = params.get("extraData")
        extra_values = momo_signature.parse_extra_data(extra_data)
        package_id = momo_signature.extract_int(extra_values, "packageId")
        driver_id = momo_signature.extract_int(extra_values, "driverId")
        if package_id is None or driver_id is None:
            raise PaymentCallbackError(f"Cannot read packageId or driverId from extraData: {extra_data}")

        package = await package_dal.get_package_by_id(session, package_id)
        if not package:
            raise NotFoundError(f"Service package not found with id: {package_id}")

        if str(result_code) != str(momo_signature.SUCCESS_RESULT_CODE):
            logging.warning(f"MoMo payment failed: orderId={order_id}, resultCode={result_code}, message={message}")
            return {
                "success": False,
                "message": f"Payment failed: {message}",
                "resultCode": result_code,
            }

        existing_payment = await payment_dal.get_payment_by_order_id(session, order_id) if order_id else None
        if existing_payment:
            logging.info(f"MoMo callback for already processed order {order_id}, no new writes")
            subscription = await subscription_dal.get_subscription_by_id(session, existing_payment.subscription_id)
            return self._success_result(subscription, package, existing_payment, already_processed=True)

        logging.info(f"MoMo payment successful: orderId={order_id}, transId={params.get('transId')}, driverId={driver_id}")
        subscription = await self.subscription_service.create_subscription_after_payment(
            session, package_id, driver_id
        )
        payment = await payment_dal.create_payment_record(
            session,
            {
                "subscription_id": subscription.id,
                "amount": self._parse_amount(params.get("amount"), package),
                "payment_method": PAYMENT_METHOD_MOMO,
                "payment_date": datetime.now(timezone.utc),
                "status": PaymentStatus.COMPLETED,
                "order_id": order_id,
                "transaction_code": str(params.get("transId")) if params.get("transId") is not None else None,
            },
        )
        logging.info(f"Payment {payment.id} recorded for subscription {subscription.id} (order {order_id})")
        return self._success_result(subscription, package, payment)

    @staticmethod
    def _parse_amount(raw_amount: Any, package: ServicePackage) -> Decimal:
        try:
            return Decimal(str(raw_amount))
        except (InvalidOperation, TypeError):
            logging.warning(f"MoMo callback amount {raw_amount!r} is not a number, using package price")
            return Decimal(package.price)

    @staticmethod
    def _success_result(
        subscription: Optional[DriverSubscription],
        package: ServicePackage,
        payment: Payment,
        already_processed: bool = False,
    ) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "success": True,
            "message": "Payment successful! Your service package has been activated.",
            "packageName": package.name,
            "maxSwaps": package.max_swaps,
            "amount": str(payment.amount),
            "transactionCode": payment.transaction_code,
            "orderId": payment.order_id,
        }
        if subscription:
            result.update({
                "subscriptionId": subscription.id,
                "remainingSwaps": subscription.remaining_swaps,
                "startDate": subscription.start_date.isoformat(),
                "endDate": subscription.end_date.isoformat(),
            })
        if already_processed:
            result["alreadyProcessed"] = True
        return result


ERROR_STATUS_CODES = (
    (SecurityViolationError, 403),
    (AccessDeniedError, 403),
    (PaymentCallbackError, 400),
    (NotFoundError, 404),
    (ConflictError, 409),
)


def _status_for_error(error: EVSwapError) -> int:
    for error_type, status in ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            return status
    return 422


async def momo_callback_route(request: web.Request) -> web.Response:
    """
    AIOHTTP route handler for MoMo callbacks.

    GET carries the parameters in the query string (redirect return), POST in
    a JSON body (IPN).
    """
    service: MoMoService = request.app["momo_service"]
    session_factory: async_sessionmaker = request.app["async_session_factory"]

    if not service.configured:
        logging.warning("SECURITY: MoMo callback called but service not configured")
        return web.json_response({"success": False, "message": "momo_disabled"}, status=503)

    if request.method == "POST":
        try:
            params = await request.json()
        except ValueError:
            logging.error("MoMo callback with malformed JSON body")
            return web.json_response({"success": False, "message": "Malformed callback body"}, status=400)
        if not isinstance(params, dict):
            return web.json_response({"success": False, "message": "Malformed callback body"}, status=400)
    else:
        params = dict(request.query)

    async with session_factory() as session:
        try:
            async with TransactionContext(session, label=f"momo-callback:{params.get('orderId')}"):
                result = await service.handle_payment_callback(session, params)
        except EVSwapError as e:
            logging.error(f"Error processing MoMo callback: {e}")
            return web.json_response(
                {"success": False, "message": f"Payment processing error: {e}"},
                status=_status_for_error(e),
            )
        except Exception as e:
            logging.error(f"Unexpected error processing MoMo callback: {e}", exc_info=True)
            return web.json_response({"success": False, "message": "internal_error"}, status=500)

    return web.json_response(result, status=200)
