#!/usr/bin/env python3
"""
Tests for Slim app-object discovery: verbs, map(), groups and ->add() middleware.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from apiposture.models import EndpointType, HttpMethod
from apiposture.slim_discoverer import SlimEndpointDiscoverer, resolve_middleware
from apiposture.ts_adapter import parse_php_file, parse_php_ts

FIXTURE = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'fixtures', 'slim', 'routes.php')


def discover(code):
    return SlimEndpointDiscoverer().discover(parse_php_ts(code), 'app/routes.php')


class TestFixture:
    @pytest.fixture(scope="class")
    def endpoints(self):
        return SlimEndpointDiscoverer().discover(parse_php_file(FIXTURE), FIXTURE)

    def test_routes(self, endpoints):
        assert [(ep.route, ep.methods) for ep in endpoints] == [
            ('/api/status', (HttpMethod.GET,)),
            ('/api/health', (HttpMethod.GET,)),
            ('/api/users', (HttpMethod.GET,)),
            ('/api/users', (HttpMethod.POST,)),
            ('/api/users/{id}', (HttpMethod.PUT,)),
            ('/api/users/{id}', (HttpMethod.DELETE,)),
            ('/api/contact', (HttpMethod.POST,)),
            ('/api/admin/dashboard', (HttpMethod.GET,)),
            ('/api/admin/settings', (HttpMethod.POST,)),
        ]
        assert all(ep.type is EndpointType.ROUTE for ep in endpoints)
        assert all(ep.controller_name is None for ep in endpoints)

    def test_group_middleware(self, endpoints):
        users = [ep for ep in endpoints if ep.route.startswith('/api/users')]
        assert all(ep.authorization.has_auth for ep in users)
        assert users[0].authorization.middleware == ('AuthMiddleware',)
        admin = [ep for ep in endpoints if ep.route.startswith('/api/admin')]
        assert all(ep.authorization.middleware == ('JwtAuthMiddleware',) for ep in admin)

    def test_ungrouped_routes_public(self, endpoints):
        contact = [ep for ep in endpoints if ep.route == '/api/contact'][0]
        assert not contact.authorization.has_auth
        assert contact.authorization.middleware == ()


class TestInline:
    def test_map_methods(self):
        eps = discover("<?php $app->map(['GET', 'POST'], '/form', function ($req, $res) { return $res; });")
        assert eps[0].methods == (HttpMethod.GET, HttpMethod.POST)

    def test_any(self):
        eps = discover("<?php $app->any('/proxy', ProxyAction::class);")
        assert eps[0].methods == HttpMethod.all()

    def test_route_level_add(self):
        eps = discover("""<?php
$app->post('/orders', CreateOrderAction::class)
    ->add(new RoleMiddleware('manager'))
    ->add(CorsMiddleware::class);
""")
        auth = eps[0].authorization
        assert auth.middleware == ('RoleMiddleware', 'CorsMiddleware')
        assert auth.has_auth

    def test_nested_groups(self):
        eps = discover("""<?php
$app->group('/api', function ($api) {
    $api->group('/v1', function ($v1) {
        $v1->get('/items', ListItemsAction::class);
    })->add(new TokenMiddleware());
    $api->get('/ping', PingAction::class);
})->add(new CorsMiddleware());
""")
        routes = {ep.route: ep for ep in eps}
        assert set(routes) == {'/api/v1/items', '/api/ping'}
        assert routes['/api/v1/items'].authorization.middleware == ('CorsMiddleware', 'TokenMiddleware')
        assert routes['/api/v1/items'].authorization.has_auth
        assert not routes['/api/ping'].authorization.has_auth

    def test_root_route(self):
        eps = discover("<?php $app->get('', HomeAction::class);")
        assert eps[0].route == '/'

    def test_variable_middleware(self):
        eps = discover("<?php $app->get('/x', XAction::class)->add($sessionGuard);")
        assert eps[0].authorization.middleware == ('$sessionGuard',)
        assert eps[0].authorization.has_auth

    def test_non_route_member_calls_ignored(self):
        eps = discover("<?php $cache->get('key'); $request->get('id'); $app->run();")
        assert eps == []


class TestSupports:
    def test_slim_file(self):
        assert SlimEndpointDiscoverer().supports(parse_php_file(FIXTURE), FIXTURE)

    def test_laravel_facade_chain_not_claimed(self):
        root = parse_php_ts("<?php Route::prefix('/admin')->get('/stats', [StatsController::class, 'show']);")
        d = SlimEndpointDiscoverer()
        assert not d.supports(root, 'routes/web.php')
        assert d.discover(root, 'routes/web.php') == []

    def test_plain_script_not_claimed(self):
        assert not SlimEndpointDiscoverer().supports(parse_php_ts("<?php echo $_GET['q'];"), 'q.php')


@pytest.mark.parametrize('name, expected', [
    ('AuthMiddleware', True),
    ('JwtMiddleware', True),
    ('BearerTokenCheck', True),
    ('AclMiddleware', True),
    ('PermissionGuard', True),
    ('CorsMiddleware', False),
    ('ContentLengthMiddleware', False),
])
def test_middleware_hints(name, expected):
    assert resolve_middleware((name,)).has_auth is expected
