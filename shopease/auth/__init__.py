"""
Authentication service for ShopEase.

This package provides account and authentication services:
- User registration and login
- JWT bearer tokens
- Password reset by email
- Profile and address management
- Role-based access control
"""
