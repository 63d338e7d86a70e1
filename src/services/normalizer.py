"""
Business-rule normalization of extracted invoice records.

All functions are pure and deterministic. Anomalies (e.g. the centavos rule
stripping zeros from a genuinely round amount) are never raised; they are
only visible in the output.
"""

import re
from loguru import logger
from ..models.invoice import InvoiceRecord, ServiceLine

ELIGIBILITY_KEYWORD = "doppler"
ENTITY_PLACEHOLDER = "EPS no identificada"
MAX_PATIENT_ID_DIGITS = 10

_NON_DIGITS = re.compile(r"\D")
_UNKNOWN_ENTITIES = {"", "unknown"}


def resolve_entity(entity: str | None, plan: str | None) -> str:
    """Entity name, falling back to the plan and then to a placeholder."""
    if entity is None or entity.strip().lower() in _UNKNOWN_ENTITIES:
        if plan and plan.strip():
            return plan
        return ENTITY_PLACEHOLDER
    return entity


def sanitize_patient_id(patient_id: str | int | None) -> str | None:
    """Keep digits only, at most the first 10."""
    if patient_id is None:
        return None
    digits = _NON_DIGITS.sub("", str(patient_id))
    return digits[:MAX_PATIENT_ID_DIGITS]


def is_eligible(service: ServiceLine, keyword: str = ELIGIBILITY_KEYWORD) -> bool:
    return bool(service.description) and keyword.lower() in service.description.lower()


def filter_services(services: list[ServiceLine], keyword: str = ELIGIBILITY_KEYWORD) -> list[ServiceLine]:
    """Services whose description contains the keyword, in input order."""
    return [s for s in services if is_eligible(s, keyword)]


def denoise_value(value: str | int | float | None) -> int:
    """
    Parse a locale-formatted peso amount into an integer.

    Non-digits are stripped; a digit string longer than 2 that ends in "00"
    is floor-divided by 100 to drop spurious centavos.

    Example:
        >>> denoise_value("18.360.000,00")
        18360000
        >>> denoise_value("25")
        25
    """
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    digits = _NON_DIGITS.sub("", "" if value is None else str(value))
    if not digits:
        return 0

    number = int(digits)
    if len(digits) > 2 and digits.endswith("00"):
        logger.debug("Removed centavos", raw=digits, value=number // 100)
        return number // 100
    return number


def normalize_invoice(record: InvoiceRecord, keyword: str = ELIGIBILITY_KEYWORD) -> InvoiceRecord:
    """Return a normalized copy of `record`; the input is left untouched."""
    services = [
        service.model_copy(update={"value": denoise_value(service.value)})
        for service in filter_services(record.services, keyword)
    ]

    dropped = len(record.services) - len(services)
    if dropped:
        logger.info(
            "Dropped ineligible services",
            orden_servicio=record.order_number,
            dropped=dropped,
            kept=len(services),
        )

    return record.model_copy(update={
        "entity": resolve_entity(record.entity, record.plan),
        "patient_id": sanitize_patient_id(record.patient_id),
        "services": services,
    })
