"""Lesson packages: purchasable bundles of lessons."""
