"""GraphQL schema for customers."""
from decimal import Decimal
from typing import List

import strawberry
import strawberry_django
from django.db.models import Q
from strawberry import auto
from strawberry.types import Info

from apps.core.context import Context
from apps.core.permissions import check_perm, require_perm
from apps.invoices.reports import ReportService
from .codes import sanitize_customer_code
from .models import Customer


@strawberry_django.type(Customer)
class CustomerType:
    id: auto
    name: auto
    code: auto
    email: auto
    phone: auto
    vat_number: auto
    address: auto
    is_active: auto
    created_at: auto

    @strawberry.field
    def outstanding_amount(self) -> Decimal:
        """Unpaid balance across this customer's issued invoices."""
        return ReportService(self.business).customer_outstanding(self)


@strawberry.type
class CustomerConnection:
    items: List[CustomerType]
    total_count: int
    page: int
    page_size: int
    has_next_page: bool
    has_previous_page: bool


@strawberry.input
class CustomerInput:
    name: str
    code: str = ""
    email: str = ""
    phone: str = ""
    vat_number: str = ""
    address: strawberry.scalars.JSON | None = None


@strawberry.type
class CustomerResult:
    customer: CustomerType | None = None
    success: bool = False
    error: str | None = None


@strawberry.type
class CustomerQuery:
    @strawberry.field
    def customers(
        self,
        info: Info[Context, None],
        search: str | None = None,
        is_active: bool | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> CustomerConnection:
        user = require_perm(info, "customers", "read")
        queryset = Customer.objects.filter(business=user.business)

        if is_active is not None:
            queryset = queryset.filter(is_active=is_active)

        if search:
            queryset = queryset.filter(
                Q(name__icontains=search)
                | Q(code__icontains=search)
                | Q(email__icontains=search)
                | Q(vat_number__icontains=search)
            )

        queryset = queryset.order_by("name")
        total_count = queryset.count()

        offset = (page - 1) * page_size
        items = list(queryset[offset : offset + page_size])

        return CustomerConnection(
            items=items,
            total_count=total_count,
            page=page,
            page_size=page_size,
            has_next_page=offset + page_size < total_count,
            has_previous_page=page > 1,
        )

    @strawberry.field
    def customer(self, info: Info[Context, None], id: strawberry.ID) -> CustomerType | None:
        user = require_perm(info, "customers", "read")
        return Customer.objects.filter(business=user.business, id=id).first()


@strawberry.type
class CustomerMutation:
    @strawberry.mutation
    def create_customer(
        self, info: Info[Context, None], input: CustomerInput
    ) -> CustomerResult:
        """Create a customer for the current business."""
        user, err = check_perm(info, "customers", "write")
        if err:
            return CustomerResult(error=err)

        name = input.name.strip()
        if not name:
            return CustomerResult(error="Customer name is required.")

        code = sanitize_customer_code(input.code)
        if code and Customer.objects.filter(business=user.business, code=code).exists():
            return CustomerResult(error=f"Customer code {code} is already in use.")

        customer = Customer.objects.create(
            business=user.business,
            name=name,
            code=code,
            email=input.email,
            phone=input.phone,
            vat_number=input.vat_number,
            address=input.address or {},
        )
        return CustomerResult(customer=customer, success=True)
