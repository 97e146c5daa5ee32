"""ID generation utilities."""
import uuid


def new_id(prefix: str) -> str:
    """Generate a UUID4-based ID with prefix."""
    return f"{prefix}{uuid.uuid4().hex}"


def new_client_order_id() -> str:
    """Fresh client_order_id for exactly one order submission attempt."""
    return str(uuid.uuid4())
