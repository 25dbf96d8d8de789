"""Media scanning and indexing pipeline for the MyTube video catalog."""
from .database import CatalogDatabase, Channel, Video
from .indexer import MediaIndexer, ScanInProgress, ScanStatistics, is_scan_running, scan_exclusive
from .metadata import MetadataExtractor, MetadataExtractionFailed, VideoMetadata
from .reconciler import Reconciler
from .scanner import VideoScanner, ChannelSource, MediaRootUnavailable, UNCATEGORIZED_CHANNEL
from .thumbnails import ThumbnailGenerator, ThumbnailGenerationFailed
from .titles import format_title

__version__ = "0.1.0"
