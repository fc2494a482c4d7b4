from django.contrib import admin

from private_orders.models import (
    ActivityLogEntry,
    IdempotencyKey,
    Notification,
    NotificationOutbox,
    OrderItemORM,
    OrderORM,
    PartnerMemberORM,
    PartnerORM,
)


class OrderItemInline(admin.TabularInline):
    model = OrderItemORM
    extra = 0
    readonly_fields = ("stock_status", "stock_confirmed_at")


@admin.register(PartnerORM)
class PartnerAdmin(admin.ModelAdmin):
    list_display = ("id", "business_name", "partner_type", "distributor_code", "created_at")
    list_filter = ("partner_type",)
    search_fields = ("business_name", "distributor_code")


@admin.register(PartnerMemberORM)
class PartnerMemberAdmin(admin.ModelAdmin):
    list_display = ("id", "partner", "user_id", "created_at")
    search_fields = ("user_id", "partner__business_name")


@admin.register(OrderORM)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("order_number", "partner", "distributor", "status", "case_count", "total_usd", "created_at")
    list_filter = ("status", "created_at")
    search_fields = ("order_number", "client_name", "payment_reference")
    inlines = (OrderItemInline,)
    # Status only moves through the workflow services.
    readonly_fields = ("status", "payment_reference", "suspended_from")


@admin.register(ActivityLogEntry)
class ActivityLogAdmin(admin.ModelAdmin):
    list_display = ("order", "sequence_number", "action", "previous_status", "new_status", "actor_role", "created_at")
    list_filter = ("subject", "action", "created_at")
    search_fields = ("order__order_number",)

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    def has_add_permission(self, request):
        return False


@admin.register(NotificationOutbox)
class NotificationOutboxAdmin(admin.ModelAdmin):
    list_display = ("id", "recipient_id", "notification_type", "processed", "failed", "retry_count", "created_at")
    list_filter = ("processed", "failed", "notification_type", "created_at")
    readonly_fields = ("id", "recipient_id", "entity_id", "metadata", "processed", "processed_at", "retry_count", "last_error")


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ("id", "user_id", "notification_type", "title", "read_at", "created_at")
    list_filter = ("notification_type", "created_at")


@admin.register(IdempotencyKey)
class IdempotencyAdmin(admin.ModelAdmin):
    list_display = ("key", "user_id", "operation", "created_at")
    list_filter = ("operation", "created_at")
    search_fields = ("key", "user_id")
