"""
Resolve which staff devices receive delivery / table notifications.
Returns token lists; nothing here sends or persists anything.
"""
import logging

from django.db.models import Q

from .models import DeliveryStaffing, DriverType, Staff

logger = logging.getLogger(__name__)


def _collect_tokens(staff_members):
    """Union device tokens of staff, each staff counted once, tokens deduplicated in order."""
    seen_staff = set()
    tokens = []
    seen_tokens = set()
    for member in staff_members:
        if member.pk in seen_staff:
            continue
        seen_staff.add(member.pk)
        for token in member.device_tokens():
            token = (token or '').strip()
            if token and token not in seen_tokens:
                seen_tokens.add(token)
                tokens.append(token)
    return tokens


def is_on_active_shift(member):
    """Explicitly on shift and not paused."""
    return member.is_on_shift is True and not member.is_paused


def is_table_eligible(member):
    """On shift or never used the shift system (is_on_shift is None); never paused."""
    return member.is_on_shift is not False and not member.is_paused


def serves_table(member, table_number):
    """Staff without assigned tables serve every table."""
    assigned = member.assigned_tables or []
    if not assigned:
        return True
    return str(table_number).strip() in {str(t).strip() for t in assigned}


def delivery_candidates(business):
    """
    Staff that may pick up a ready delivery order, honouring the business's
    delivery staffing preference. Only members on an active shift are returned.
    """
    staffing = business.delivery_staffing or DeliveryStaffing.HYBRID
    include_own = staffing in (DeliveryStaffing.OWN_STAFF, DeliveryStaffing.HYBRID)
    include_lokma = (
        staffing in (DeliveryStaffing.LOKMA_DRIVERS, DeliveryStaffing.HYBRID)
        and business.lokma_driver_enabled
    )

    candidates = []
    if include_lokma:
        drivers = Staff.objects.filter(
            is_driver=True,
            driver_type=DriverType.LOKMA,
            assigned_businesses=business,
        ).distinct()
        candidates.extend(m for m in drivers if is_on_active_shift(m))
    if include_own:
        own = Staff.objects.filter(business=business).exclude(
            is_driver=True, driver_type=DriverType.LOKMA
        )
        candidates.extend(m for m in own if is_on_active_shift(m))
    return candidates


def delivery_staff_tokens(business):
    tokens = _collect_tokens(delivery_candidates(business))
    logger.debug('Resolved %s delivery tokens for business %s', len(tokens), business.pk)
    return tokens


def table_candidates(business, table_number):
    """Staff of the business responsible for table_number and eligible by shift."""
    qs = Staff.objects.filter(
        Q(business=business) | Q(assigned_businesses=business)
    ).distinct()
    return [
        m for m in qs
        if is_table_eligible(m) and serves_table(m, table_number)
    ]


def table_staff_tokens(business, table_number):
    return _collect_tokens(table_candidates(business, table_number))


def business_admin_tokens(business):
    """Devices registered on the business itself plus its directly affiliated staff."""
    tokens = [t for t in (business.fcm_tokens or []) if t]
    staff_tokens = _collect_tokens(Staff.objects.filter(business=business, is_driver=False))
    return list(dict.fromkeys(tokens + staff_tokens))
