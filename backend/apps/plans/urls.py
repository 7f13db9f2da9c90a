"""
URL routing for plan endpoints.
"""

from django.urls import path
from apps.plans import views

app_name = "plans"

urlpatterns = [
    path("plans", views.create_or_list_plans, name="create-or-list-plans"),  # POST, GET
    path(
        "plans/<uuid:planId>",
        views.get_update_or_delete_plan,
        name="get-update-or-delete-plan",
    ),  # GET, PUT, DELETE
    path("plans/<uuid:planId>/submit", views.submit_plan, name="submit-plan"),
    path("plans/<uuid:planId>/approve", views.decide_plan, name="decide-plan"),
    path("plans/<uuid:planId>/activate", views.activate_plan, name="activate-plan"),
    path("plans/<uuid:planId>/complete", views.complete_plan, name="complete-plan"),
    path("plans/<uuid:planId>/terminate", views.terminate_plan, name="terminate-plan"),
    path("plans/<uuid:planId>/reopen", views.reopen_plan, name="reopen-plan"),
    path(
        "plans/<uuid:planId>/amend-budget", views.amend_budget, name="amend-budget"
    ),
    path(
        "plans/<uuid:planId>/expenditures",
        views.record_expenditure,
        name="record-expenditure",
    ),
    path("plans/<uuid:planId>/clone", views.clone_plan, name="clone-plan"),
]
