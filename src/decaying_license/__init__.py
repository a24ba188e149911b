"""
Decaying License - Harberger-tax style license allocation engine

A licensor drafts terms, a licensee pays for the license and prepays
patronage, and the license decays back toward the licensor at a fixed rate.
Bidders claim the decayed share with escrowed value; once resale opens, the
best funded bid takes the license. Every step is an event in an auditable,
replayable log.

Fun fact: Ancient Athens had a "liturgy" system where a citizen assigned a
costly public duty could name a richer citizen and challenge them to either
take the duty or swap fortunes - the antidosis, an early forced-sale rule.
"""

from decaying_license.engine import LicenseEngine

__version__ = "0.1.0"
__all__ = ["LicenseEngine", "__version__"]
