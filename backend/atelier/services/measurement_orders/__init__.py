"""
Measurement order services.

Intake, pricing, replacement and payment handling for made-to-measure
orders. Import concrete modules directly; this package stays free of
model and repository imports.
"""
