"""folio-core: report caching and scheduled report generation.

The catalog backend produces expensive report artifacts (PDF, spreadsheet)
from a user's filtered data set.  ``folio`` decides when such an artifact can
be served from a previous run instead of being regenerated, and drives the
periodic re-generation of reports without overlapping runs of the same job.

Packages:
    folio.core.caching     fingerprinting, two-tier cache, eviction, janitor
    folio.core.scheduling  recurrence rules, guards, scheduler loop
    folio.core.reporting   lookup, render on miss, put
    folio.cli              operator command line
"""

__version__ = "0.3.0"
