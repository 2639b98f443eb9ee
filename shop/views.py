# shop/views.py: catalog and back-office ViewSets, contact form, image upload
import logging

import cloudinary.uploader
from django.db.models import Count
from rest_framework import filters, mixins, status, viewsets
from rest_framework.decorators import api_view, parser_classes, permission_classes
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.permissions import SAFE_METHODS, AllowAny, BasePermission, IsAdminUser
from rest_framework.response import Response

from .models import Category, Contact, Order, Product
from .serializers import (
    CategorySerializer,
    ContactSerializer,
    OrderReadSerializer,
    ProductSerializer,
)

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 5 * 1024 * 1024


class IsStaffOrReadOnly(BasePermission):
    def has_permission(self, request, view):
        if request.method in SAFE_METHODS:
            return True
        user = request.user
        return bool(user and user.is_authenticated and user.is_staff)


# -------------------------------------------------
# Categories
# -------------------------------------------------
class CategoryViewSet(viewsets.ModelViewSet):
    permission_classes = [IsStaffOrReadOnly]
    serializer_class = CategorySerializer

    def get_queryset(self):
        return Category.objects.all().annotate(product_count=Count("products")).order_by("name")


# -------------------------------------------------
# Products (CRUD)
# -------------------------------------------------
class ProductViewSet(viewsets.ModelViewSet):
    permission_classes = [IsStaffOrReadOnly]
    serializer_class = ProductSerializer
    queryset = Product.objects.all().select_related("category")

    filter_backends = [filters.SearchFilter, filters.OrderingFilter]
    search_fields = ["name", "description"]
    ordering_fields = ["id", "name", "price", "created_at"]

    def get_queryset(self):
        qs = super().get_queryset()
        category_id = self.request.query_params.get("category_id")
        if category_id:
            qs = qs.filter(category_id=category_id)
        return qs

    def perform_destroy(self, instance):
        logger.info(f"Deleting product {instance.id} ({instance.name})")
        instance.delete()


# -------------------------------------------------
# Contacts: public create, staff read
# -------------------------------------------------
class ContactViewSet(
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.DestroyModelMixin,
    viewsets.GenericViewSet,
):
    serializer_class = ContactSerializer
    queryset = Contact.objects.all().order_by("-created_at")

    def get_permissions(self):
        if self.action == "create":
            return [AllowAny()]
        return [IsAdminUser()]


# -------------------------------------------------
# Orders: back-office listing (read only)
# -------------------------------------------------
class OrderViewSet(viewsets.ReadOnlyModelViewSet):
    permission_classes = [IsAdminUser]
    serializer_class = OrderReadSerializer
    queryset = Order.objects.all().prefetch_related("items").order_by("-created_at", "-id")
    filterset_fields = ["status"]
    ordering_fields = ["created_at", "total", "status"]


# -------------------------------------------------
# Image upload (media service passthrough)
# -------------------------------------------------
@api_view(["POST"])
@permission_classes([IsAdminUser])
@parser_classes([MultiPartParser, FormParser])
def upload_image(request):
    """
    POST /api/upload/ (multipart, field "file")
    Returns: {success, url, public_id}
    """
    upload = request.FILES.get("file")
    if not upload:
        return Response({"error": "No file provided"}, status=status.HTTP_400_BAD_REQUEST)
    if not (upload.content_type or "").startswith("image/"):
        return Response({"error": "File must be an image"}, status=status.HTTP_400_BAD_REQUEST)
    if upload.size > MAX_UPLOAD_BYTES:
        return Response({"error": "File size must be less than 5MB"}, status=status.HTTP_400_BAD_REQUEST)

    try:
        result = cloudinary.uploader.upload(
            upload,
            folder="products",
            transformation=[{"width": 800, "height": 800, "crop": "fill", "quality": "auto"}],
        )
    except Exception as e:
        logger.error(f"Image upload failed: {e}")
        return Response({"error": "Failed to upload image"}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    return Response({
        "success": True,
        "url": result.get("secure_url"),
        "public_id": result.get("public_id"),
    })
