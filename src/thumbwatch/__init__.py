"""
Thumbwatch
==========

Health monitoring for live video feeds from their periodic thumbnails.

Each submitted thumbnail is classified (ok / black / corrupt), compared
against the previous frame of its stream to detect freezes, counted in
Prometheus metrics, archived to object storage and, when unhealthy,
reported to an alert webhook.

Components:
    - ingest: Request normalization and image decoding
    - classify: Frame health classification and perceptual fingerprints
    - freeze: Per-stream freeze state machine
    - observability: Prometheus metrics and the stream health board
    - archive: Object storage and daily structured log
    - alerts: Webhook dispatcher
    - pipeline: Per-submission control flow

Example:
    from thumbwatch.config import settings
    from thumbwatch.main import create_app

    app = create_app(settings)
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
