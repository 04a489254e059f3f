"""URL configuration for the invoicing backend."""
from django.contrib import admin
from django.http import JsonResponse
from django.urls import path
from django.views.decorators.csrf import csrf_exempt
from strawberry.django.views import GraphQLView

from apps.core.context import get_context
from .schema import schema


def health_check(request):
    return JsonResponse({"status": "ok", "service": "malta-invoicing"})


class AuthenticatedGraphQLView(GraphQLView):
    def get_context(self, request, response):
        return get_context(request)


urlpatterns = [
    path("admin/", admin.site.urls),
    path("graphql", csrf_exempt(AuthenticatedGraphQLView.as_view(schema=schema))),
    path("api/health", health_check),
]
