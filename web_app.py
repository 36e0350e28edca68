#!/usr/bin/env python3
"""
Manual-trigger HTTP endpoint for the source crawler.
Queues an out-of-band crawl of one source and returns immediately.
"""

import logging
from datetime import datetime, timezone

from flask import Flask, current_app, jsonify, request

from sourcecrawler.ingestion.errors import CrawlerStopping, InvalidSettings, SourceNotFound

logger = logging.getLogger(__name__)


def _orchestrator():
    return current_app.config['ORCHESTRATOR']


def create_app(orchestrator) -> Flask:
    app = Flask(__name__)
    app.config['ORCHESTRATOR'] = orchestrator

    @app.route('/api/health')
    def health_check():
        """API health check endpoint"""
        orch = _orchestrator()
        return jsonify({
            'status': 'stopping' if orch.shutdown_requested else 'healthy',
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'running_sources': sorted(orch.held_sources()),
        })

    @app.route('/api/sources/crawl', methods=['GET', 'POST'])
    def crawl_source():
        """Dispatch a manual crawl of ?source_id=<id>"""
        raw = (request.args.get('source_id') or '').strip()
        if not raw:
            return jsonify({'success': False, 'error': 'source_id is required'}), 400
        try:
            source_id = int(raw)
        except ValueError:
            return jsonify({'success': False, 'error': 'source_id must be an integer'}), 400

        try:
            _orchestrator().trigger_source(source_id)
        except SourceNotFound:
            logger.info(f"manual crawl rejected: source {source_id} not found or locked")
            return jsonify({'success': False, 'error': 'source not found or locked'}), 404
        except CrawlerStopping:
            logger.warning(f"manual crawl rejected: crawler is shutting down (source {source_id})")
            return jsonify({'success': False, 'error': 'crawler is shutting down'}), 503
        except InvalidSettings as e:
            logger.warning(f"manual crawl rejected: {e}")
            return jsonify({'success': False, 'error': str(e)}), 422

        return jsonify({'success': True, 'source_id': source_id, 'status': 'dispatched'})

    return app


if __name__ == '__main__':
    from crawl_worker import build_orchestrator, setup_logging
    from sourcecrawler.config import CrawlerConfig

    config = CrawlerConfig.from_env()
    setup_logging(config)
    orchestrator = build_orchestrator(config)
    logger.info(f"Starting manual-trigger endpoint on {config.trigger_host}:{config.trigger_port}")
    try:
        create_app(orchestrator).run(host=config.trigger_host, port=config.trigger_port, threaded=True)
    finally:
        orchestrator.shutdown()
