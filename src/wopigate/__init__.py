# SPDX-License-Identifier: MIT
"""wopigate: WOPI storage gateway over pluggable document stores."""

__version__ = "0.1.0"
