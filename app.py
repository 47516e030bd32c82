#!/usr/bin/env python3

import logging
import threading

from flask import Flask, abort, jsonify, redirect, request
from flask_caching import Cache
from redis import Redis

from playback import CommandResult
from settings import build_context, build_settings, load_config_module


def api_error(message):
    return jsonify({'status': 'error', 'message': message})


def _command_response(result: CommandResult, status, entry_id):
    if not result.ok:
        return jsonify({'status': 'error', 'message': result.error, 'id': entry_id}), 502
    return jsonify({'status': status, 'id': entry_id})


def _get_sync_token():
    header_token = request.headers.get('X-Sync-Token')
    if header_token:
        return header_token.strip()
    auth_header = request.headers.get('Authorization', '')
    if auth_header.lower().startswith('bearer '):
        return auth_header[7:].strip()
    request_json = request.get_json(silent=True) or {}
    if isinstance(request_json, dict) and request_json.get('token'):
        return str(request_json['token'])
    if request.form.get('token'):
        return request.form.get('token')
    return request.args.get('token')


def _step_argument(name):
    value = request.args.get(name)
    if value is None or value == '':
        return None
    try:
        step = int(value)
    except ValueError:
        return False
    return step if step > 0 else False


def create_app(config=None, context=None, start_sync=None):
    """Build the Flask app around an application context.

    ``context`` is constructed from ``config`` (or the discovered config
    module) when not given.
    """
    app = Flask(__name__)

    if context is None:
        settings = build_settings(config if config is not None else load_config_module())
        cache = Cache(app, config=settings.cache_config)
        context = build_context(settings, cache=cache)
    settings = context.settings

    def perform_sync():
        summary = context.pipeline.run()
        app.logger.info("Library sync finished: %s", summary)
        return summary

    @app.route('/healthz')
    def route_healthcheck():
        status = {'status': 'ok'}
        if context.mongo_client is not None:
            try:
                context.mongo_client.admin.command('ping')
                status['mongo'] = 'ok'
            except Exception:
                status['status'] = 'error'
                status['mongo'] = 'error'
                return jsonify(status), 503
        cache_config = settings.cache_config
        if cache_config.get('CACHE_TYPE') in ('RedisCache', 'redis'):
            try:
                Redis(
                    host=cache_config.get('CACHE_REDIS_HOST', 'localhost'),
                    port=cache_config.get('CACHE_REDIS_PORT', 6379),
                    password=cache_config.get('CACHE_REDIS_PASSWORD'),
                    db=cache_config.get('CACHE_REDIS_DB') or 0,
                    socket_timeout=2,
                ).ping()
                status['redis'] = 'ok'
            except Exception:
                status['status'] = 'error'
                status['redis'] = 'error'
                return jsonify(status), 503
        return jsonify(status)

    @app.route('/')
    def route_index():
        return redirect('/library')

    @app.route('/library')
    def route_library():
        name_filter = request.args.get('q') or None
        return jsonify({'status': 'ok', 'data': context.library.listing(name_filter)})

    @app.route('/library/<int:entry_id>/play')
    def route_play(entry_id):
        entry = context.store.find_by_id(entry_id)
        if entry is None:
            return abort(404)
        app.logger.info('Playing media item %s: %s', entry_id, entry.path)
        return _command_response(context.controller.play(entry.path), 'playing', entry_id)

    @app.route('/library/<int:entry_id>/pause')
    def route_pause(entry_id):
        return _command_response(context.controller.pause(), 'paused', entry_id)

    @app.route('/library/<int:entry_id>/stop')
    def route_stop(entry_id):
        app.logger.info('Stopping media item %s', entry_id)
        return _command_response(context.controller.stop(), 'stopped', entry_id)

    @app.route('/library/<int:entry_id>/volume-up')
    def route_volume_up(entry_id):
        step = _step_argument('step')
        if step is False:
            return api_error('invalid_step'), 400
        return _command_response(context.controller.volume_up(step), 'volume-up', entry_id)

    @app.route('/library/<int:entry_id>/volume-down')
    def route_volume_down(entry_id):
        step = _step_argument('step')
        if step is False:
            return api_error('invalid_step'), 400
        return _command_response(context.controller.volume_down(step), 'volume-down', entry_id)

    @app.route('/library/<int:entry_id>/seek-forward')
    def route_seek_forward(entry_id):
        seconds = _step_argument('seconds')
        if seconds is False:
            return api_error('invalid_seconds'), 400
        return _command_response(context.controller.seek_forward(seconds), 'seek-forward', entry_id)

    @app.route('/library/<int:entry_id>/seek-backward')
    def route_seek_backward(entry_id):
        seconds = _step_argument('seconds')
        if seconds is False:
            return api_error('invalid_seconds'), 400
        return _command_response(context.controller.seek_backward(seconds), 'seek-backward', entry_id)

    @app.route('/library/<int:entry_id>/status')
    def route_status(entry_id):
        status = context.controller.query_status()
        payload = status.to_dict()
        payload['id'] = entry_id
        return jsonify(payload)

    @app.route('/api/admin/sync', methods=['GET'])
    def route_admin_sync_state():
        return jsonify({
            'status': 'ok',
            'running': context.pipeline.running,
            'pending': context.store.count_pending(),
        })

    @app.route('/api/admin/sync', methods=['POST'])
    def route_admin_sync():
        token = _get_sync_token()
        if settings.admin_sync_token and token != settings.admin_sync_token:
            app.logger.warning('Unauthorized sync attempt')
            return abort(403)
        summary = perform_sync()
        if summary.get('status') == 'already_running':
            return jsonify(summary), 409
        return jsonify({'status': 'ok', 'summary': summary})

    if start_sync is None:
        start_sync = settings.sync_on_start
    if start_sync:
        def _run_sync():
            try:
                perform_sync()
            except Exception:
                app.logger.exception('Automatic library sync failed')

        threading.Thread(target=_run_sync, name='library-sync', daemon=True).start()

    app.context = context
    return app


if __name__ == '__main__':
    import argparse

    parser = argparse.ArgumentParser(description='Run the media library server.')
    parser.add_argument('port', type=int, metavar='PORT', nargs='?', default=34801, help='Port to listen on.')
    parser.add_argument('-b', '--bind-address', default='localhost', help='Bind server to address.')
    parser.add_argument('-d', '--debug', action='store_true', help='Enable debug mode.')
    parser.add_argument('--sync', action='store_true', help='Run one library sync and exit.')
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    if args.sync:
        sync_settings = build_settings(load_config_module())
        sync_context = build_context(sync_settings)
        print(sync_context.pipeline.run())
    else:
        app = create_app()
        app.run(host=args.bind_address, port=args.port, debug=args.debug)
