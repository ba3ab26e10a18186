# Services package - Consolidated imports only

from .content import ContentService
from .event_log import EventLog, EventQueryResult, EventStats
