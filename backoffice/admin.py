from django.contrib import admin, messages

from . import commission
from .models import (
    Business,
    BusinessUsage,
    CollectionStatus,
    CommissionRecord,
    Order,
    OrderItem,
    OrderStatus,
    PlatformSetting,
    SponsoredConversion,
    Staff,
    SubscriptionPlan,
)


# --- Inlines ---

class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0


class BusinessUsageInline(admin.TabularInline):
    model = BusinessUsage
    extra = 0
    readonly_fields = ('period', 'order_count', 'total_commission', 'last_order_at')
    can_delete = False


@admin.register(SubscriptionPlan)
class SubscriptionPlanAdmin(admin.ModelAdmin):
    list_display = (
        'id', 'code', 'name', 'commission_click_collect', 'commission_own_courier',
        'commission_lokma_courier', 'free_order_count', 'per_order_fee_type', 'is_active'
    )
    list_filter = ('is_active', 'per_order_fee_type')
    search_fields = ('id', 'code', 'name')
    readonly_fields = ('created_at', 'updated_at')


@admin.register(Business)
class BusinessAdmin(admin.ModelAdmin):
    list_display = (
        'name', 'subscription_plan', 'delivery_staffing', 'has_own_courier',
        'smart_notifications_enabled', 'account_balance', 'created_at'
    )
    list_filter = ('delivery_staffing', 'has_own_courier', 'smart_notifications_enabled')
    search_fields = ('name', 'phone')
    inlines = (BusinessUsageInline,)
    readonly_fields = ('account_balance', 'created_at', 'updated_at')


@admin.register(Staff)
class StaffAdmin(admin.ModelAdmin):
    list_display = ('name', 'business', 'role', 'is_driver', 'driver_type', 'shift_status', 'is_on_shift')
    list_filter = ('is_driver', 'driver_type', 'shift_status', 'is_on_shift')
    search_fields = ('name', 'email', 'phone')
    autocomplete_fields = ('business',)
    filter_horizontal = ('assigned_businesses',)
    readonly_fields = ('created_at', 'updated_at')


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = (
        'order_number', 'business', 'fulfillment_type', 'table_number', 'status',
        'payment_method', 'payment_status', 'total_amount', 'created_at'
    )
    list_filter = ('business', 'status', 'fulfillment_type', 'payment_method')
    search_fields = ('order_number', 'customer_name', 'customer_phone')
    autocomplete_fields = ('business', 'courier')
    inlines = (OrderItemInline,)
    readonly_fields = ('feedback_send_at', 'feedback_sent', 'feedback_sent_at', 'created_at', 'updated_at')
    actions = ['create_commission_records']

    @admin.action(description='Create missing commission records')
    def create_commission_records(self, request, queryset):
        created = 0
        for order in queryset.filter(
            status__in=(OrderStatus.DELIVERED, OrderStatus.COMPLETED),
            commission_record__isnull=True,
        ):
            if commission.create_commission_record(order):
                created += 1
        self.message_user(request, f'Created {created} commission record(s).', messages.SUCCESS)


@admin.register(CommissionRecord)
class CommissionRecordAdmin(admin.ModelAdmin):
    list_display = (
        'order_number', 'business_name', 'period', 'courier_type', 'commission_rate',
        'total_commission', 'sponsored_fee', 'collection_status', 'is_free_order', 'created_at'
    )
    list_filter = ('period', 'collection_status', 'courier_type', 'is_free_order')
    search_fields = ('order_number', 'business_name')
    readonly_fields = [f.name for f in CommissionRecord._meta.fields if f.name not in ('collection_status', 'invoice_id')]
    actions = ['mark_collected']

    @admin.action(description='Mark cash commission as collected')
    def mark_collected(self, request, queryset):
        updated = queryset.filter(collection_status=CollectionStatus.PENDING).update(
            collection_status=CollectionStatus.COLLECTED
        )
        self.message_user(request, f'Marked {updated} record(s) as collected.', messages.SUCCESS)


@admin.register(SponsoredConversion)
class SponsoredConversionAdmin(admin.ModelAdmin):
    list_display = ('order', 'business', 'item_count', 'fee_per_conversion', 'total_fee', 'period', 'created_at')
    list_filter = ('period', 'business')
    readonly_fields = ('created_at',)


@admin.register(PlatformSetting)
class PlatformSettingAdmin(admin.ModelAdmin):
    list_display = ('id', 'sponsored_enabled', 'sponsored_fee_per_conversion', 'updated_at')
    readonly_fields = ('created_at', 'updated_at')
