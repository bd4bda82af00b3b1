from pydantic import BaseModel


class WebhookAckOut(BaseModel):
    ok: bool
    topic: str
    action: str
    order_id: str | None = None
    detail: str | None = None
    duplicate: bool = False
