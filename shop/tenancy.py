import uuid

from django.conf import settings

from core.exceptions import NotFoundError, ValidationError

from .models import Shop


def resolve_shop(request):
    """Return the shop named by the tenant header of ``request``.

    Every storefront and POS endpoint is scoped to exactly one shop; the
    header is mandatory and must name an existing shop.
    """
    raw = (request.headers.get(settings.STORE_HEADER) or "").strip()
    if not raw:
        raise ValidationError(f"Missing {settings.STORE_HEADER} header")
    try:
        shop_id = uuid.UUID(raw)
    except ValueError:
        raise ValidationError(f"Invalid {settings.STORE_HEADER} header")
    shop = Shop.objects.filter(id=shop_id).first()
    if not shop:
        raise NotFoundError("Shop not found")
    return shop


def resolve_owned_shop(request):
    """Like ``resolve_shop``, but only for the shop's owner.

    Other users get the same 404 as for an unknown shop, matching the
    owner-filtered querysets in ``shop.views``.
    """
    shop = resolve_shop(request)
    if shop.owner_id is None or shop.owner_id != request.user.pk:
        raise NotFoundError("Shop not found")
    return shop
