from django.contrib.auth import authenticate
from django.db import transaction
from rest_framework import status, viewsets, mixins
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework_simplejwt.tokens import RefreshToken

from .models import User, Restaurant
from .permissions import IsRestaurantManager
from .serializers import (
    UserSerializer, RestaurantRegistrationSerializer, StaffMemberSerializer,
)


def _token_response(user, status_code=status.HTTP_200_OK):
    refresh = RefreshToken.for_user(user)
    return Response({
        'user': UserSerializer(user).data,
        'tokens': {
            'access': str(refresh.access_token),
            'refresh': str(refresh),
        }
    }, status=status_code)


@api_view(['POST'])
@permission_classes([AllowAny])
def register(request):
    """Create a restaurant together with its owner account"""
    serializer = RestaurantRegistrationSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    with transaction.atomic():
        restaurant = Restaurant.objects.create(
            name=data['restaurant_name'],
            address=data.get('address', ''),
            contact_number=data.get('contact_number', ''),
            email=data['email'],
            currency=data.get('currency') or 'PHP',
        )
        user = User.objects.create_user(
            email=data['email'],
            password=data['password'],
            first_name=data['first_name'],
            last_name=data['last_name'],
            phone=data.get('phone') or '',
            user_type='owner',
            restaurant=restaurant,
        )

    return _token_response(user, status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([AllowAny])
def login(request):
    email = request.data.get('email')
    password = request.data.get('password')

    user = authenticate(username=email, password=password)
    if user and user.is_active:
        return _token_response(user)

    return Response({'error': 'Invalid credentials'}, status=status.HTTP_401_UNAUTHORIZED)


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated])
def profile(request):
    """Return or update the authenticated user's profile"""
    if request.method == 'PATCH':
        serializer = UserSerializer(request.user, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(serializer.data)

    return Response(UserSerializer(request.user).data)


class StaffViewSet(mixins.ListModelMixin,
                   mixins.CreateModelMixin,
                   mixins.RetrieveModelMixin,
                   mixins.UpdateModelMixin,
                   viewsets.GenericViewSet):
    """Staff accounts of the caller's restaurant (owners and managers only)"""
    serializer_class = StaffMemberSerializer
    permission_classes = [IsRestaurantManager]

    def get_queryset(self):
        return User.objects.filter(restaurant_id=self.request.user.restaurant_id).order_by('email')

    def perform_create(self, serializer):
        serializer.save(restaurant=self.request.user.restaurant)
