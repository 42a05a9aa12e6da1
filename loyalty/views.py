"""Loyalty API endpoints: wallet snapshot, history and staff adjustments."""

from drf_spectacular.utils import OpenApiExample, extend_schema
from rest_framework import generics, status
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from common.api import error_response

from .selectors import transactions_for, wallet_snapshot
from .serializers import AdjustSerializer, LoyaltyTransactionSerializer, WalletSnapshotSerializer
from .services import LoyaltyError, adjust


class WalletView(APIView):
    """Current points balance and tier for the signed-in customer."""

    permission_classes = [IsAuthenticated]
    throttle_scope = "loyalty"

    @extend_schema(
        tags=["Loyalty"],
        summary="Get loyalty wallet",
        responses={200: WalletSnapshotSerializer},
        examples=[
            OpenApiExample(
                "Silver",
                value={
                    "balance": 1200,
                    "tier": "Silver",
                    "next_tier": "Gold",
                    "next_tier_at": 5000,
                    "points_to_next": 3800,
                    "lifetime_earned": 1500,
                    "lifetime_redeemed": 300,
                },
            )
        ],
    )
    def get(self, request):
        return Response(WalletSnapshotSerializer(wallet_snapshot(customer=request.user)).data)


class HistoryPagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = "page_size"


class TransactionListView(generics.ListAPIView):
    permission_classes = [IsAuthenticated]
    serializer_class = LoyaltyTransactionSerializer
    pagination_class = HistoryPagination
    throttle_scope = "loyalty"

    def get_queryset(self):
        return transactions_for(customer=self.request.user)

    @extend_schema(tags=["Loyalty"], summary="List loyalty transactions")
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)


class AdjustView(APIView):
    """Staff-only manual credit or debit of a customer's points."""

    permission_classes = [IsAdminUser]
    throttle_scope = "loyalty"

    @extend_schema(
        tags=["Loyalty"],
        summary="Adjust a customer's points",
        request=AdjustSerializer,
        responses={200: WalletSnapshotSerializer},
        examples=[
            OpenApiExample("Goodwill", value={"user_id": 7, "points": 250, "note": "Late delivery"}, request_only=True),
            OpenApiExample(
                "Insufficient",
                value={"detail": "Insufficient points balance.", "code": "insufficient_balance"},
                response_only=True,
                status_codes=["409"],
            ),
        ],
    )
    def post(self, request):
        serializer = AdjustSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        customer = serializer.validated_data["customer"]
        try:
            adjust(
                customer=customer,
                delta=serializer.validated_data["points"],
                source=f"staff:{request.user.pk}",
                note=serializer.validated_data.get("note"),
            )
        except LoyaltyError as exc:
            return error_response(str(exc), exc.code, status.HTTP_409_CONFLICT, **exc.details)
        return Response(WalletSnapshotSerializer(wallet_snapshot(customer=customer)).data)
