"""Storefront domain services: variants, cart, orders, status, payment, shipping"""
