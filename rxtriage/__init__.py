"""
RxTriage Priority Triage & Verification Engine
==============================================

A Python library that orders pharmacy fulfillment work so pharmacists see
the most time- and risk-sensitive orders first, and that screens prescription
photos before they are submitted.

* ``rxtriage.sla``            -- queue time and SLA arithmetic.
* ``rxtriage.priority``       -- additive priority score and tier.
* ``rxtriage.queue``          -- stable sorting, tier grouping, queue items.
* ``rxtriage.actions``        -- legal operator actions per order status.
* ``rxtriage.image_quality``  -- capture approval and patient guidance.

All functions are pure: time is always passed in as ``now``.  AI
verification results and image signals come from external services and are
consumed read-only.  Every output supports, and never replaces, the
pharmacist's review.
"""

__version__ = "0.1.0"
