"""Root GraphQL schema."""
import strawberry

from apps.core.schema import AuthMutation, CoreQuery
from apps.customers.schema import CustomerMutation, CustomerQuery
from apps.invoices.schema import InvoiceMutation, InvoiceQuery


@strawberry.type
class Query(CoreQuery, CustomerQuery, InvoiceQuery):
    @strawberry.field
    def health(self) -> str:
        return "ok"


@strawberry.type
class Mutation(AuthMutation, CustomerMutation, InvoiceMutation):
    pass


schema = strawberry.Schema(
    query=Query,
    mutation=Mutation,
)
