from django.contrib import admin

from .models import CourierPartner


@admin.register(CourierPartner)
class CourierPartnerAdmin(admin.ModelAdmin):
    list_display = ("name", "provider_code", "is_active", "priority", "created_at")
    list_filter = ("is_active", "provider_code")
    search_fields = ("name", "provider_code")
