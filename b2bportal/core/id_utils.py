import uuid

import shortuuid


def generate_id() -> str:
    return str(uuid.uuid4())


def generate_order_number(length: int = 10) -> str:
    return f"B2B-{shortuuid.ShortUUID(alphabet='0123456789ABCDEFGHJKLMNPQRSTUVWXYZ').random(length=length)}"
