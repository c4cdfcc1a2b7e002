# Repositories package init
"""
Notivate Backend - Repositories
=================================

What:  Data access objects over the async session factory. Each method runs in
       its own short transaction.

Inventory:
    - UsageRepository:   usage_tracking reads and the atomic increment
    - ProfileRepository: user_profiles reads (subscription tier)
"""
