import django_filters as filters

from payouts.models import Chargeback, Payout
from payouts.state_machines import ChargebackStatus, PayoutState


class PayoutFilter(filters.FilterSet):
    status = filters.MultipleChoiceFilter(choices=PayoutState.choices)
    organization_id = filters.UUIDFilter(field_name="organization_id")
    event_id = filters.UUIDFilter(field_name="event_id")
    ended_after = filters.IsoDateTimeFilter(field_name="event_ended_at", lookup_expr="gte")
    ended_before = filters.IsoDateTimeFilter(field_name="event_ended_at", lookup_expr="lte")

    class Meta:
        model = Payout
        fields = ["status", "organization_id", "event_id", "requires_review"]


class ChargebackFilter(filters.FilterSet):
    status = filters.MultipleChoiceFilter(choices=ChargebackStatus.choices)
    organization_id = filters.UUIDFilter(field_name="organization_id")

    class Meta:
        model = Chargeback
        fields = ["status", "organization_id", "event_id", "deducted_from_reserve"]
