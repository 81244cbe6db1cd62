from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

app_name = 'expenses'

# Mounted under /api/groups/<group_id>/expenses/
router = DefaultRouter()
router.register(r'', views.GroupExpenseViewSet, basename='expense')

urlpatterns = [
    # GET    /api/groups/{group_id}/expenses/        - List group expenses
    # POST   /api/groups/{group_id}/expenses/        - Record expense
    # GET    /api/groups/{group_id}/expenses/{id}/   - Get expense with splits
    # PUT    /api/groups/{group_id}/expenses/{id}/   - Edit expense (owner)
    # PATCH  /api/groups/{group_id}/expenses/{id}/   - Partial edit (owner)
    # DELETE /api/groups/{group_id}/expenses/{id}/   - Delete expense (owner)

    path('', include(router.urls)),
]
