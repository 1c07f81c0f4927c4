"""
ViewSets for the payout admin API.

This module provides staff-only REST endpoints for the payout engine:
- PayoutViewSet: Payout lists, review queue, approve/reject, manual runs
- ChargebackViewSet: Chargeback list and admin resolution

URL Structure:
    /api/v1/payouts/                      GET
    /api/v1/payouts/{id}/                 GET
    /api/v1/payouts/review/               GET
    /api/v1/payouts/{id}/approve/         POST
    /api/v1/payouts/{id}/reject/          POST
    /api/v1/payouts/process/              POST
    /api/v1/payouts/process-reserves/     POST
    /api/v1/chargebacks/                  GET
    /api/v1/chargebacks/{id}/             GET
    /api/v1/chargebacks/{id}/resolve/     POST

Design Decisions:
    - Read-only viewsets; every state change goes through a service
    - Service errors propagate to core.exception_handler (400/404/409/502)
    - Manual runs execute synchronously and return the run counts
"""

from __future__ import annotations

from django.utils import timezone
from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import OpenApiResponse, extend_schema, extend_schema_view
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response

from payouts.filters import ChargebackFilter, PayoutFilter
from payouts.models import Chargeback, Payout
from payouts.pagination import AdminPageNumberPagination
from payouts.serializers import (
    ApprovePayoutSerializer,
    ChargebackSerializer,
    PayoutDetailSerializer,
    PayoutListSerializer,
    RejectPayoutSerializer,
    ResolveChargebackSerializer,
)
from payouts.services.chargebacks import ChargebackService
from payouts.services.review import ReviewService
from payouts.state_machines import ResolutionSource
from payouts.workers import batch_processor, reserve_release

UUID_PATTERN = "[0-9a-fA-F-]{36}"


@extend_schema_view(
    list=extend_schema(summary="List payouts"),
    retrieve=extend_schema(summary="Payout detail with reserve ledger"),
)
class PayoutViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Staff-only payout administration.

    review:
        Held payouts waiting for a decision, oldest first.

    approve:
        Move a held payout back to eligible.

    reject:
        End a held or eligible payout. A reason is required.

    process / process_reserves:
        Run the batch processor or the reserve release engine now.
    """

    permission_classes = [IsAdminUser]
    lookup_value_regex = UUID_PATTERN
    pagination_class = AdminPageNumberPagination
    filter_backends = [DjangoFilterBackend]
    filterset_class = PayoutFilter

    def get_queryset(self):
        queryset = Payout.objects.all().order_by("-created_at")
        if self.action == "retrieve":
            queryset = queryset.prefetch_related("reserve_entries")
        return queryset

    def get_serializer_class(self):
        if self.action == "retrieve":
            return PayoutDetailSerializer
        if self.action == "approve":
            return ApprovePayoutSerializer
        if self.action == "reject":
            return RejectPayoutSerializer
        return PayoutListSerializer

    @extend_schema(
        summary="Review queue",
        responses={200: PayoutListSerializer(many=True)},
    )
    @action(detail=False, methods=["get"], url_path="review")
    def review(self, request):
        queryset = self.filter_queryset(
            Payout.objects.needing_review().order_by("created_at")
        )
        page = self.paginate_queryset(queryset)
        if page is not None:
            serializer = PayoutListSerializer(page, many=True)
            return self.get_paginated_response(serializer.data)
        serializer = PayoutListSerializer(queryset, many=True)
        return Response(serializer.data)

    @extend_schema(
        summary="Approve a held payout",
        request=ApprovePayoutSerializer,
        responses={
            200: PayoutDetailSerializer,
            404: OpenApiResponse(description="Payout not found"),
            409: OpenApiResponse(description="Payout is not held"),
        },
    )
    @action(detail=True, methods=["post"])
    def approve(self, request, pk=None):
        serializer = ApprovePayoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        payout = ReviewService.approve_payout(
            payout_id=pk,
            admin_user_id=request.user.pk,
            notes=serializer.validated_data.get("notes", ""),
        )
        return Response(PayoutDetailSerializer(payout).data)

    @extend_schema(
        summary="Reject a payout",
        request=RejectPayoutSerializer,
        responses={
            200: PayoutDetailSerializer,
            400: OpenApiResponse(description="Reason missing or out of range"),
            404: OpenApiResponse(description="Payout not found"),
            409: OpenApiResponse(description="Payout is neither held nor eligible"),
        },
    )
    @action(detail=True, methods=["post"])
    def reject(self, request, pk=None):
        serializer = RejectPayoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        payout = ReviewService.reject_payout(
            payout_id=pk,
            admin_user_id=request.user.pk,
            reason=serializer.validated_data["reason"],
        )
        return Response(PayoutDetailSerializer(payout).data)

    @extend_schema(
        summary="Run the payout batch now",
        request=None,
        responses={200: OpenApiResponse(description="Batch run counts")},
    )
    @action(detail=False, methods=["post"])
    def process(self, request):
        result = batch_processor.process_eligible_payouts(now=timezone.now())
        return Response(result.to_dict(), status=status.HTTP_200_OK)

    @extend_schema(
        summary="Run the reserve release now",
        request=None,
        responses={200: OpenApiResponse(description="Reserve release run counts")},
    )
    @action(detail=False, methods=["post"], url_path="process-reserves")
    def process_reserves(self, request):
        result = reserve_release.process_reserve_releases(now=timezone.now())
        return Response(result.to_dict(), status=status.HTTP_200_OK)


@extend_schema_view(
    list=extend_schema(summary="List chargebacks"),
    retrieve=extend_schema(summary="Chargeback detail"),
)
class ChargebackViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Staff-only chargeback administration.

    resolve:
        Resolve an open chargeback as won, lost or closed. Resolving as
        lost schedules the reserve deduction.
    """

    permission_classes = [IsAdminUser]
    lookup_value_regex = UUID_PATTERN
    pagination_class = AdminPageNumberPagination
    filter_backends = [DjangoFilterBackend]
    filterset_class = ChargebackFilter
    serializer_class = ChargebackSerializer
    queryset = Chargeback.objects.all().order_by("-created_at")

    def get_serializer_class(self):
        if self.action == "resolve":
            return ResolveChargebackSerializer
        return ChargebackSerializer

    @extend_schema(
        summary="Resolve a chargeback",
        request=ResolveChargebackSerializer,
        responses={
            200: ChargebackSerializer,
            404: OpenApiResponse(description="Chargeback not found"),
            409: OpenApiResponse(description="Chargeback already resolved"),
        },
    )
    @action(detail=True, methods=["post"])
    def resolve(self, request, pk=None):
        serializer = ResolveChargebackSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        chargeback, _changed = ChargebackService.resolve_dispute(
            outcome=serializer.validated_data["status"],
            now=timezone.now(),
            chargeback_id=pk,
            source=ResolutionSource.ADMIN,
        )
        return Response(ChargebackSerializer(chargeback).data)
