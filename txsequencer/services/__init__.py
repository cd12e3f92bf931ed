"""Service layer: lifecycle events and the transaction queue service"""
