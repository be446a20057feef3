from django.db import models
from decimal import Decimal


# --- Choice constants ---

class OrderStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    PREPARING = 'preparing', 'Preparing'
    READY = 'ready', 'Ready'
    SERVED = 'served', 'Served'
    ON_THE_WAY = 'onTheWay', 'On The Way'
    DELIVERED = 'delivered', 'Delivered'
    COMPLETED = 'completed', 'Completed'
    REJECTED = 'rejected', 'Rejected'
    CANCELLED = 'cancelled', 'Cancelled'


class FulfillmentType(models.TextChoices):
    PICKUP = 'pickup', 'Pickup'
    DELIVERY = 'delivery', 'Delivery'
    DINE_IN = 'dine_in', 'Dine In'


class PaymentMethod(models.TextChoices):
    CASH = 'cash', 'Cash'
    CARD = 'card', 'Card'
    STRIPE = 'stripe', 'Stripe'
    CARD_ON_DELIVERY = 'card_on_delivery', 'Card On Delivery'


class PaymentStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    PAID = 'paid', 'Paid'
    COMPLETED = 'completed', 'Completed'
    REFUNDED = 'refunded', 'Refunded'
    FAILED = 'failed', 'Failed'


class DeliveryStaffing(models.TextChoices):
    OWN_STAFF = 'own_staff', 'Own Staff'
    LOKMA_DRIVERS = 'lokma_drivers', 'LOKMA Drivers'
    HYBRID = 'hybrid', 'Hybrid'


class DriverType(models.TextChoices):
    LOKMA = 'lokma', 'LOKMA'
    BUSINESS = 'business', 'Business'


class ShiftStatus(models.TextChoices):
    ACTIVE = 'active', 'Active'
    PAUSED = 'paused', 'Paused'
    OFF = 'off', 'Off'


class PerOrderFeeType(models.TextChoices):
    NONE = 'none', 'None'
    PERCENTAGE = 'percentage', 'Percentage'
    FIXED = 'fixed', 'Fixed'


class CourierType(models.TextChoices):
    CLICK_COLLECT = 'click_collect', 'Click & Collect'
    OWN_COURIER = 'own_courier', 'Own Courier'
    LOKMA_COURIER = 'lokma_courier', 'LOKMA Courier'


class CollectionStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    AUTO_COLLECTED = 'auto_collected', 'Auto Collected'
    COLLECTED = 'collected', 'Collected'


class AlexaLanguage(models.TextChoices):
    DE = 'de-DE', 'Deutsch'
    TR = 'tr-TR', 'Türkçe'


# --- Models ---

class SubscriptionPlan(models.Model):
    """Commission terms. Businesses reference a plan by id or by code."""
    id = models.CharField(primary_key=True, max_length=64)
    code = models.CharField(max_length=64, unique=True)
    name = models.CharField(max_length=255)
    commission_click_collect = models.DecimalField(
        max_digits=5, decimal_places=2, null=True, blank=True
    )
    commission_own_courier = models.DecimalField(
        max_digits=5, decimal_places=2, null=True, blank=True
    )
    commission_lokma_courier = models.DecimalField(
        max_digits=5, decimal_places=2, null=True, blank=True
    )
    free_order_count = models.PositiveIntegerField(default=0)
    per_order_fee_type = models.CharField(
        max_length=20, choices=PerOrderFeeType.choices, default=PerOrderFeeType.NONE
    )
    per_order_fee_amount = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal('0')
    )
    sponsored_fee_per_conversion = models.DecimalField(
        max_digits=12, decimal_places=2, null=True, blank=True,
        help_text='Overrides the platform-wide sponsored fee when set'
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'backoffice_subscription_plan'
        ordering = ['name']

    def __str__(self):
        return f'{self.name} ({self.code})'


class Business(models.Model):
    name = models.CharField(max_length=255)
    phone = models.CharField(max_length=32, blank=True)
    subscription_plan = models.CharField(
        max_length=64, default='free',
        help_text='SubscriptionPlan id or code'
    )
    has_own_courier = models.BooleanField(default=False)
    delivery_staffing = models.CharField(
        max_length=20, choices=DeliveryStaffing.choices, default=DeliveryStaffing.HYBRID
    )
    lokma_driver_enabled = models.BooleanField(default=True)
    # Smart notifications (IoT gateway)
    smart_notifications_enabled = models.BooleanField(default=False)
    gateway_url = models.URLField(blank=True)
    gateway_api_key = models.CharField(max_length=255, blank=True)
    alexa_enabled = models.BooleanField(default=True)
    alexa_language = models.CharField(
        max_length=10, choices=AlexaLanguage.choices, default=AlexaLanguage.DE
    )
    led_enabled = models.BooleanField(default=True)
    hue_enabled = models.BooleanField(default=False)
    account_balance = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal('0')
    )
    fcm_tokens = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'backoffice_business'
        verbose_name_plural = 'Businesses'
        ordering = ['name']

    def __str__(self):
        return self.name


class BusinessUsage(models.Model):
    """Per-period usage ledger of a business (period = 'YYYY-MM')."""
    business = models.ForeignKey(
        Business, on_delete=models.CASCADE, related_name='usages'
    )
    period = models.CharField(max_length=7)
    order_count = models.PositiveIntegerField(default=0)
    total_commission = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal('0')
    )
    last_order_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'backoffice_business_usage'
        ordering = ['business', '-period']
        constraints = [
            models.UniqueConstraint(
                fields=['business', 'period'],
                name='unique_business_usage_period'
            )
        ]

    def __str__(self):
        return f'{self.business.name} {self.period}: {self.order_count} orders'


class PlatformSetting(models.Model):
    sponsored_enabled = models.BooleanField(default=True)
    sponsored_fee_per_conversion = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal('0.40')
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'backoffice_platform_setting'
        ordering = ['-id']

    def __str__(self):
        return f'PlatformSetting #{self.id}'


class Staff(models.Model):
    """Admin/staff member or driver. Drivers may serve several businesses."""
    name = models.CharField(max_length=255)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=32, blank=True)
    business = models.ForeignKey(
        Business, on_delete=models.SET_NULL, null=True, blank=True,
        related_name='staff'
    )
    assigned_businesses = models.ManyToManyField(
        Business, related_name='assigned_drivers', blank=True
    )
    role = models.CharField(max_length=50, blank=True)
    is_driver = models.BooleanField(default=False)
    driver_type = models.CharField(
        max_length=20, choices=DriverType.choices, blank=True
    )
    shift_status = models.CharField(
        max_length=20, choices=ShiftStatus.choices, blank=True
    )
    # None: never used the shift system
    is_on_shift = models.BooleanField(null=True, blank=True, default=None)
    assigned_tables = models.JSONField(default=list, blank=True)
    fcm_tokens = models.JSONField(default=list, blank=True)
    web_fcm_tokens = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'backoffice_staff'
        verbose_name_plural = 'Staff'
        ordering = ['name']

    def __str__(self):
        return self.name

    @property
    def is_paused(self):
        return self.shift_status == ShiftStatus.PAUSED

    def device_tokens(self):
        """Mobile tokens first, then web tokens."""
        return list(self.fcm_tokens or []) + list(self.web_fcm_tokens or [])


class Order(models.Model):
    business = models.ForeignKey(
        Business, on_delete=models.CASCADE, related_name='orders'
    )
    order_number = models.CharField(max_length=64, unique=True)
    customer_name = models.CharField(max_length=255, blank=True)
    customer_phone = models.CharField(max_length=32, blank=True)
    customer_fcm_token = models.CharField(max_length=255, blank=True)
    fulfillment_type = models.CharField(
        max_length=20, choices=FulfillmentType.choices, default=FulfillmentType.PICKUP
    )
    table_number = models.CharField(max_length=32, blank=True, null=True)
    status = models.CharField(
        max_length=20, choices=OrderStatus.choices, default=OrderStatus.PENDING
    )
    payment_method = models.CharField(
        max_length=20, choices=PaymentMethod.choices, default=PaymentMethod.CASH
    )
    payment_status = models.CharField(
        max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING
    )
    courier = models.ForeignKey(
        Staff, on_delete=models.SET_NULL, null=True, blank=True,
        related_name='deliveries'
    )
    courier_name = models.CharField(max_length=255, blank=True)
    delivery_address = models.TextField(blank=True)
    total_amount = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal('0')
    )
    rejection_reason = models.TextField(blank=True)
    cancellation_reason = models.TextField(blank=True)
    sponsored_item_ids = models.JSONField(default=list, blank=True)
    feedback_send_at = models.DateTimeField(null=True, blank=True)
    feedback_sent = models.BooleanField(null=True, blank=True, default=None)
    feedback_sent_at = models.DateTimeField(null=True, blank=True)
    feedback_error = models.TextField(blank=True)
    has_rating = models.BooleanField(default=False)
    scheduled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'backoffice_order'
        ordering = ['-created_at']

    def __str__(self):
        return f'Order #{self.order_number} ({self.business.name})'

    @property
    def is_delivery(self):
        return self.fulfillment_type == FulfillmentType.DELIVERY

    @property
    def is_dine_in(self):
        return self.fulfillment_type == FulfillmentType.DINE_IN or bool(self.table_number)


class OrderItem(models.Model):
    order = models.ForeignKey(
        Order, on_delete=models.CASCADE, related_name='items'
    )
    product_id = models.CharField(max_length=64, blank=True)
    name = models.CharField(max_length=255)
    quantity = models.DecimalField(max_digits=10, decimal_places=3, default=Decimal('1'))
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    total = models.DecimalField(max_digits=12, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'backoffice_order_item'
        ordering = ['order', 'id']

    def __str__(self):
        return f'{self.name} x {self.quantity}'


class CommissionRecord(models.Model):
    # One-to-one with order: the unique constraint makes creation exactly-once
    order = models.OneToOneField(
        Order, on_delete=models.PROTECT, related_name='commission_record'
    )
    business = models.ForeignKey(
        Business, on_delete=models.CASCADE, related_name='commission_records'
    )
    order_number = models.CharField(max_length=64, blank=True)
    business_name = models.CharField(max_length=255, blank=True)
    plan_id = models.CharField(max_length=64)
    plan_name = models.CharField(max_length=255, blank=True)
    order_total = models.DecimalField(max_digits=12, decimal_places=2)
    courier_type = models.CharField(max_length=20, choices=CourierType.choices)
    commission_rate = models.DecimalField(max_digits=5, decimal_places=2)
    commission_amount = models.DecimalField(max_digits=12, decimal_places=2)
    per_order_fee = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal('0')
    )
    total_commission = models.DecimalField(max_digits=12, decimal_places=2)
    net_commission = models.DecimalField(max_digits=12, decimal_places=2)
    vat_rate = models.DecimalField(max_digits=5, decimal_places=2)
    vat_amount = models.DecimalField(max_digits=12, decimal_places=2)
    sponsored_fee = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal('0')
    )
    payment_method = models.CharField(max_length=20, blank=True)
    collection_status = models.CharField(
        max_length=20, choices=CollectionStatus.choices, default=CollectionStatus.PENDING
    )
    invoice_id = models.CharField(max_length=64, blank=True, null=True)
    is_free_order = models.BooleanField(default=False)
    period = models.CharField(max_length=7)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'backoffice_commission_record'
        ordering = ['-created_at']

    def __str__(self):
        return f'Commission {self.order_number}: {self.total_commission} ({self.collection_status})'


class SponsoredConversion(models.Model):
    order = models.ForeignKey(
        Order, on_delete=models.CASCADE, related_name='sponsored_conversions'
    )
    business = models.ForeignKey(
        Business, on_delete=models.CASCADE, related_name='sponsored_conversions'
    )
    product_ids = models.JSONField(default=list, blank=True)
    item_count = models.PositiveIntegerField(default=0)
    fee_per_conversion = models.DecimalField(max_digits=12, decimal_places=2)
    total_fee = models.DecimalField(max_digits=12, decimal_places=2)
    period = models.CharField(max_length=7)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'backoffice_sponsored_conversion'
        ordering = ['-created_at']

    def __str__(self):
        return f'Sponsored {self.order_id}: {self.item_count} x {self.fee_per_conversion}'
