from rest_framework.throttling import UserRateThrottle


class MutationUserThrottle(UserRateThrottle):
    scope = "mutation_user"

    def allow_request(self, request, view):
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            return super().allow_request(request, view)
        return True


class PlanCreationThrottle(UserRateThrottle):
    """Caps plan creation per user; applied to the plan collection view only."""

    scope = "plan_create"

    def allow_request(self, request, view):
        if request.method == "POST":
            return super().allow_request(request, view)
        return True
