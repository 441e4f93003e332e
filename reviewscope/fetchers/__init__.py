"""Fetchers producing structured review pages for tracked organizations."""

from reviewscope.fetchers.base import BaseFetcher
from reviewscope.fetchers.files import JsonFileFetcher
from reviewscope.fetchers.remote import HttpFetcher

__all__ = [
    "BaseFetcher",
    "HttpFetcher",
    "JsonFileFetcher",
]
