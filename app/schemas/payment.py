from datetime import datetime
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


def _as_amount(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    plan: Optional[str] = None
    email: Optional[str] = None
    coupon_code: Optional[str] = Field(None, alias="couponCode")


class XenditCheckoutResponse(BaseModel):
    invoice_url: str


class MidtransCheckoutResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    redirect_url: str
    token: str
    client_key: str = Field(alias="clientKey")
    is_production: bool = Field(alias="isProduction")


class StatusResponse(BaseModel):
    status: str


class MidtransCheckResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    status: Optional[str] = None
    midtrans_status: Optional[str] = Field(None, alias="midtransStatus")


class PaypalCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    plan: Optional[str] = None
    coupon_code: Optional[str] = Field(None, alias="couponCode")
    currency: str = "USD"
    description: str = "Subscription"


class PaypalCreateResponse(BaseModel):
    id: Optional[str] = None
    approve_url: Optional[str] = None


class RescuedOrderResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    order_id: str = Field(alias="orderId")
    user_id: int = Field(alias="userId")
    plan: Optional[str] = None
    amount: float
    status: str
    rescued_from: Optional[str] = Field(None, alias="rescuedFrom")
    created_at: Optional[datetime] = Field(None, alias="createdAt")


class XenditCallback(BaseModel):
    """Invoice callback. Fields may sit at the top level or under "data"."""

    provider: Literal["xendit"] = "xendit"
    event: str = ""
    status: str = ""
    external_id: str = ""
    invoice_id: str = ""
    amount: Optional[float] = None
    payer_email: str = ""
    payment_id: str = ""
    account_number: str = ""
    bank_code: str = ""
    merchant_code: str = ""
    transaction_timestamp: str = ""

    @property
    def order_id(self) -> str:
        return self.external_id or self.invoice_id

    @property
    def email(self) -> str:
        return self.payer_email

    @property
    def event_name(self) -> str:
        if self.event:
            return self.event
        return f"invoice.{self.status.lower()}" if self.status else ""

    @classmethod
    def from_payload(cls, body: Dict[str, Any]) -> "XenditCallback":
        data = body.get("data") if isinstance(body.get("data"), dict) else {}

        def pick(key: str) -> Any:
            value = body.get(key)
            if value is None or value == "":
                value = data.get(key)
            return value

        return cls(
            event=_as_text(body.get("event")),
            status=_as_text(pick("status")),
            external_id=_as_text(pick("external_id")),
            invoice_id=_as_text(pick("id")),
            amount=_as_amount(pick("amount")),
            payer_email=_as_text(pick("payer_email")).lower(),
            payment_id=_as_text(pick("payment_id")),
            account_number=_as_text(pick("account_number")),
            bank_code=_as_text(pick("bank_code")),
            merchant_code=_as_text(pick("merchant_code")),
            transaction_timestamp=_as_text(pick("transaction_timestamp")),
        )

    def metadata(self) -> Dict[str, str]:
        return {
            "Xendit Invoice": self.invoice_id,
            "Payment ID": self.payment_id,
            "VA Account": self.account_number,
            "Bank": self.bank_code,
            "Merchant": self.merchant_code,
            "Timestamp": self.transaction_timestamp,
        }


class MidtransStatus(BaseModel):
    """Canonical Midtrans transaction status document (webhook body or status API)."""

    provider: Literal["midtrans"] = "midtrans"
    order_id: str = ""
    transaction_status: str = ""
    fraud_status: str = ""
    status_code: str = ""
    gross_amount: Optional[float] = None
    gross_amount_raw: str = ""
    signature_key: str = ""
    payment_type: str = ""
    transaction_id: str = ""
    customer_email: str = ""

    @property
    def amount(self) -> Optional[float]:
        return self.gross_amount

    @property
    def email(self) -> str:
        return self.customer_email

    @property
    def event_name(self) -> str:
        return f"midtrans.{self.transaction_status.lower()}" if self.transaction_status else "midtrans"

    @classmethod
    def from_payload(cls, body: Dict[str, Any]) -> "MidtransStatus":
        customer = body.get("customer_details") if isinstance(body.get("customer_details"), dict) else {}
        return cls(
            order_id=_as_text(body.get("order_id")),
            transaction_status=_as_text(body.get("transaction_status")).lower(),
            fraud_status=_as_text(body.get("fraud_status")).lower(),
            status_code=_as_text(body.get("status_code")),
            gross_amount=_as_amount(body.get("gross_amount")),
            gross_amount_raw=_as_text(body.get("gross_amount")),
            signature_key=_as_text(body.get("signature_key")),
            payment_type=_as_text(body.get("payment_type")),
            transaction_id=_as_text(body.get("transaction_id")),
            customer_email=_as_text(customer.get("email") or body.get("email")).lower(),
        )

    def metadata(self) -> Dict[str, str]:
        return {
            "Midtrans Status": self.transaction_status,
            "Fraud": self.fraud_status,
            "Payment Type": self.payment_type,
            "Transaction ID": self.transaction_id,
        }


ProviderNotification = Annotated[Union[XenditCallback, MidtransStatus], Field(discriminator="provider")]
