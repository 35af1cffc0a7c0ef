#!/usr/bin/env python3
"""
Laravel route-table discovery.

Walks ``Route::`` facade calls, carrying group prefix/middleware/controller
context down through nested ``group`` closures, and scans controller classes
for constructor middleware and route attributes.

Handles:
  Route::get('/x', [C::class, 'm'])           verb registrations, any, match
  Route::middleware('auth')->prefix('api')->group(fn () => ...)
  Route::group(['prefix' => 'api', 'middleware' => ['auth']], function () {...})
  Route::controller(C::class)->group(...)     controller context for 'm' handlers
  Route::post(...)->middleware('auth')        route-level modifiers
  Route::resource('photos', C::class)         resource / apiResource expansion
  $this->middleware('auth')->only([...])      controller constructor middleware
  #[Middleware('auth')] #[Get('/x')]          controller attributes
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .discovery import (
    EndpointDiscoverer, array_dict, array_items, attributes_of, class_methods,
    class_name, class_ref_name, closure_body, has_static_call_on, is_public_method,
    iter_classes, join_paths, method_name, parent_class_name, parse_methods,
    string_list,
)
from .models import (
    AuthorizationInfo, Endpoint, EndpointType, HttpMethod, InheritedFrom,
    SourceLocation,
)
from .ts_adapter import TSNode, strip_namespace

logger = logging.getLogger(__name__)


VERB_CALLS = {
    'get': (HttpMethod.GET,),
    'post': (HttpMethod.POST,),
    'put': (HttpMethod.PUT,),
    'delete': (HttpMethod.DELETE,),
    'patch': (HttpMethod.PATCH,),
    'any': HttpMethod.all(),
}
REGISTRATION_CALLS = frozenset(VERB_CALLS) | {'match'}
RESOURCE_CALLS = frozenset({'resource', 'apiResource'})
TERMINAL_CALLS = REGISTRATION_CALLS | RESOURCE_CALLS | {'group'}

# (action, methods, suffix) in the order Laravel registers them
RESOURCE_ACTIONS = (
    ('index', (HttpMethod.GET,), ''),
    ('create', (HttpMethod.GET,), '/create'),
    ('store', (HttpMethod.POST,), ''),
    ('show', (HttpMethod.GET,), '/{%s}'),
    ('edit', (HttpMethod.GET,), '/{%s}/edit'),
    ('update', (HttpMethod.PUT, HttpMethod.PATCH), '/{%s}'),
    ('destroy', (HttpMethod.DELETE,), '/{%s}'),
)
API_RESOURCE_SKIP = frozenset({'create', 'edit'})

AUTH_MIDDLEWARE = ('auth', 'auth:api', 'auth:sanctum', 'auth:web', 'auth.basic', 'verified')
ANONYMOUS_MIDDLEWARE = ('guest',)
# lower-cased; middleware names match case-insensitively
AUTH_MIDDLEWARE_CLASSES = frozenset({
    'authenticate', 'authenticatewithbasicauth', 'ensureemailisverified',
})
ANONYMOUS_MIDDLEWARE_CLASSES = frozenset({'redirectifauthenticated'})

SYMFONY_BASE_CLASSES = frozenset({'AbstractController', 'AbstractFOSRestController'})

ROUTE_ATTRIBUTES = {
    'Route': None,
    'Get': (HttpMethod.GET,),
    'Post': (HttpMethod.POST,),
    'Put': (HttpMethod.PUT,),
    'Patch': (HttpMethod.PATCH,),
    'Delete': (HttpMethod.DELETE,),
    'Any': HttpMethod.all(),
}


def _union(*lists: Iterable[str]) -> Tuple[str, ...]:
    out: List[str] = []
    for items in lists:
        for item in items:
            if item not in out:
                out.append(item)
    return tuple(out)


def is_auth_middleware(name: str) -> bool:
    name = name.lower()
    if name in AUTH_MIDDLEWARE_CLASSES:
        return True
    return any(name == m or name.startswith(m + ':') for m in AUTH_MIDDLEWARE)


def is_anonymous_middleware(name: str) -> bool:
    name = name.lower()
    if name in ANONYMOUS_MIDDLEWARE_CLASSES:
        return True
    return any(name == m or name.startswith(m + ':') for m in ANONYMOUS_MIDDLEWARE)


def resolve_middleware(middleware: Sequence[str],
                       inherited_from: InheritedFrom = InheritedFrom.NONE) -> AuthorizationInfo:
    """Translate Laravel middleware aliases into an AuthorizationInfo."""
    has_auth = False
    allow_anonymous = False
    roles: List[str] = []
    policies: List[str] = []
    for mw in middleware:
        if is_auth_middleware(mw):
            has_auth = True
        if is_anonymous_middleware(mw):
            allow_anonymous = True
        alias, _, params = mw.partition(':')
        if not params:
            continue
        alias = alias.lower()
        if alias in ('role', 'role_or_permission'):
            has_auth = True
            # role:admin|editor,guard
            roles.extend(r for r in params.split(',')[0].split('|') if r)
        elif alias == 'permission':
            has_auth = True
            policies.extend(p for p in params.split(',')[0].split('|') if p)
        elif alias == 'can':
            has_auth = True
            ability = params.split(',')[0]
            if ability:
                policies.append(ability)
    return AuthorizationInfo(
        has_auth=has_auth,
        has_allow_anonymous=allow_anonymous,
        roles=roles,
        policies=policies,
        middleware=middleware,
        inherited_from=inherited_from,
    )


def _has_auth_signal(middleware: Sequence[str]) -> bool:
    return resolve_middleware(middleware).has_auth


@dataclass(frozen=True)
class RouteContext:
    """Lexical group context inherited by nested registrations."""
    prefixes: Tuple[str, ...] = ()
    middleware: Tuple[str, ...] = ()
    excluded: Tuple[str, ...] = ()
    controller: Optional[str] = None

    def enter(self, mods: 'ChainModifiers') -> 'RouteContext':
        return RouteContext(
            prefixes=self.prefixes + tuple(mods.prefixes),
            middleware=_union(self.middleware, mods.middleware),
            excluded=_union(self.excluded, mods.excluded),
            controller=mods.controller or self.controller,
        )

    def effective_middleware(self, extra: Iterable[str] = (),
                             excluded: Iterable[str] = ()) -> Tuple[str, ...]:
        drop = set(self.excluded) | set(excluded)
        return tuple(m for m in _union(self.middleware, extra) if m not in drop)


@dataclass
class ChainModifiers:
    """Options collected from modifier calls or a group's inline array."""
    prefixes: List[str] = field(default_factory=list)
    middleware: List[str] = field(default_factory=list)
    excluded: List[str] = field(default_factory=list)
    controller: Optional[str] = None
    only: Optional[List[str]] = None
    exclude_actions: List[str] = field(default_factory=list)

    def apply_call(self, call: TSNode):
        name = call.get_function_name()
        args = call.get_arguments()
        if name == 'middleware':
            for arg in args:
                self.middleware.extend(string_list(arg))
        elif name == 'withoutMiddleware':
            for arg in args:
                self.excluded.extend(string_list(arg))
        elif name == 'prefix' and args:
            prefix = args[0].string_value()
            if prefix:
                self.prefixes.append(prefix)
        elif name == 'controller' and args:
            self.controller = _class_or_string(args[0])
        elif name == 'only' and args:
            self.only = [a for arg in args for a in string_list(arg)]
        elif name == 'except' and args:
            self.exclude_actions.extend(a for arg in args for a in string_list(arg))

    def apply_options(self, options: Dict[str, TSNode]):
        """Route::group(['prefix' => ..., 'middleware' => ...], ...)."""
        if 'prefix' in options:
            prefix = options['prefix'].string_value()
            if prefix:
                self.prefixes.append(prefix)
        if 'middleware' in options:
            self.middleware.extend(string_list(options['middleware']))
        for key in ('excluded_middleware', 'withoutMiddleware'):
            if key in options:
                self.excluded.extend(string_list(options[key]))
        if 'controller' in options:
            self.controller = _class_or_string(options['controller'])

    @classmethod
    def from_calls(cls, calls: Iterable[TSNode]) -> 'ChainModifiers':
        mods = cls()
        for call in calls:
            mods.apply_call(call)
        return mods


def _class_or_string(node: TSNode) -> Optional[str]:
    ref = class_ref_name(node)
    if ref is not None:
        return ref
    value = node.string_value()
    return strip_namespace(value) if value else None


def _singular(word: str) -> str:
    if word.endswith('ies') and len(word) > 3:
        return word[:-3] + 'y'
    if word.endswith('ses') and len(word) > 3:
        return word[:-2]
    if word.endswith('s') and len(word) > 1:
        return word[:-1]
    return word


def route_chain(node: TSNode) -> Optional[List[TSNode]]:
    """Calls of a ``Route::a()->b()->c()`` chain, facade call first."""
    calls = []
    cur = node
    while cur is not None and cur.type in ('member_call_expression', 'nullsafe_member_call_expression'):
        calls.append(cur)
        cur = cur.child_by_field('object')
    if cur is None or cur.type != 'scoped_call_expression':
        return None
    scope = cur.child_by_field('scope')
    if scope is None or strip_namespace(scope.text) != 'Route':
        return None
    calls.append(cur)
    calls.reverse()
    return calls


class LaravelEndpointDiscoverer(EndpointDiscoverer):
    name = 'laravel'

    def supports(self, root: TSNode, file_path: str) -> bool:
        if has_static_call_on(root, 'Route'):
            return True
        return any(self._is_controller(cls) for cls in iter_classes(root))

    def discover(self, root: TSNode, file_path: str) -> List[Endpoint]:
        endpoints: List[Endpoint] = []
        self._visit(root, RouteContext(), file_path, endpoints)
        endpoints.extend(self._discover_controllers(root, file_path))
        logger.debug("laravel: %d endpoint(s) in %s", len(endpoints), file_path)
        return endpoints

    # ── Route files ──

    def _visit(self, node: TSNode, ctx: RouteContext, file_path: str, out: List[Endpoint]):
        if node.is_call:
            chain = route_chain(node)
            if chain is not None:
                self._handle_chain(chain, ctx, file_path, out)
                return
        for child in node.named_children:
            self._visit(child, ctx, file_path, out)

    def _handle_chain(self, chain: List[TSNode], ctx: RouteContext,
                      file_path: str, out: List[Endpoint]):
        index = next((i for i, call in enumerate(chain)
                      if call.get_function_name() in TERMINAL_CALLS), None)
        if index is None:
            return
        terminal = chain[index]
        name = terminal.get_function_name()
        before = ChainModifiers.from_calls(chain[:index])
        after = ChainModifiers.from_calls(chain[index + 1:])

        if name == 'group':
            self._enter_group(terminal, before, ctx, file_path, out)
        elif name in RESOURCE_CALLS:
            self._emit_resource(terminal, ctx.enter(before), after, file_path, out)
        else:
            self._emit_route(terminal, ctx.enter(before), after, file_path, out)

    def _enter_group(self, call: TSNode, mods: ChainModifiers, ctx: RouteContext,
                     file_path: str, out: List[Endpoint]):
        body = None
        for arg in call.get_arguments():
            value = arg.argument_value()
            if value is None:
                continue
            if value.type == 'array_creation_expression':
                mods.apply_options(array_dict(value))
            elif value.is_closure:
                body = closure_body(value)
        if body is None:
            return
        self._visit(body, ctx.enter(mods), file_path, out)

    def _emit_route(self, call: TSNode, ctx: RouteContext, after: ChainModifiers,
                    file_path: str, out: List[Endpoint]):
        name = call.get_function_name()
        args = [a.argument_value() for a in call.get_arguments()]
        if name == 'match':
            if len(args) < 2:
                return
            methods = parse_methods(string_list(args[0]))
            path_node, handler = args[1], args[2] if len(args) > 2 else None
        else:
            if not args:
                return
            methods = list(VERB_CALLS[name])
            path_node, handler = args[0], args[1] if len(args) > 1 else None
        path = path_node.string_value() if path_node is not None else None
        if path is None or not methods:
            return
        controller, action = self._resolve_handler(handler, ctx.controller)
        middleware = ctx.effective_middleware(after.middleware, after.excluded)
        out.append(Endpoint(
            route=join_paths(*ctx.prefixes, path),
            methods=tuple(methods),
            type=EndpointType.ROUTE,
            location=SourceLocation(file_path, call.line, call.column),
            authorization=resolve_middleware(middleware),
            controller_name=controller,
            action_name=action,
        ))

    def _emit_resource(self, call: TSNode, ctx: RouteContext, after: ChainModifiers,
                       file_path: str, out: List[Endpoint]):
        args = [a.argument_value() for a in call.get_arguments()]
        if len(args) < 2:
            return
        resource = args[0].string_value() if args[0] is not None else None
        controller = _class_or_string(args[1]) if args[1] is not None else None
        if not resource:
            return
        # photos.comments -> photos/{photo}/comments
        segments = resource.strip('/').split('.')
        base = ''
        for seg in segments[:-1]:
            base = join_paths(base, seg, '{%s}' % _singular(seg))
        base = join_paths(base, segments[-1])
        param = _singular(segments[-1].rsplit('/', 1)[-1])
        middleware = ctx.effective_middleware(after.middleware, after.excluded)
        auth = resolve_middleware(middleware)
        for action, methods, suffix in RESOURCE_ACTIONS:
            if call.get_function_name() == 'apiResource' and action in API_RESOURCE_SKIP:
                continue
            if after.only is not None and action not in after.only:
                continue
            if action in after.exclude_actions:
                continue
            out.append(Endpoint(
                route=join_paths(*ctx.prefixes, base, suffix.replace('%s', param)),
                methods=methods,
                type=EndpointType.ROUTE,
                location=SourceLocation(file_path, call.line, call.column),
                authorization=auth,
                controller_name=controller,
                action_name=action,
            ))

    @staticmethod
    def _resolve_handler(handler: Optional[TSNode],
                         context_controller: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
        if handler is None or handler.is_closure:
            return None, None
        items = array_items(handler)
        if len(items) == 2 and items[0][0] is None:
            controller = _class_or_string(items[0][1])
            action = items[1][1].string_value()
            return controller, action
        value = handler.string_value()
        if value is not None:
            if '@' in value:
                controller, action = value.split('@', 1)
                return strip_namespace(controller), action
            if context_controller:
                return context_controller, value
            return strip_namespace(value), '__invoke'
        ref = class_ref_name(handler)
        if ref is not None:
            return ref, '__invoke'
        return None, None

    # ── Controllers ──

    @staticmethod
    def _is_controller(cls: TSNode) -> bool:
        parent = parent_class_name(cls)
        # Symfony controllers extend AbstractController
        return 'Controller' in parent and parent not in SYMFONY_BASE_CLASSES

    def _discover_controllers(self, root: TSNode, file_path: str) -> List[Endpoint]:
        endpoints = []
        for cls in iter_classes(root):
            if not self._is_controller(cls):
                continue
            controller = class_name(cls)
            class_attrs = attributes_of(cls)
            prefix = ''
            for attr in class_attrs:
                if attr.name == 'Prefix' and attr.arg(0, 'prefix') is not None:
                    prefix = attr.arg(0, 'prefix').string_value() or ''
            entries = self._constructor_middleware(cls) + self._static_middleware(cls)
            entries += [_middleware_entry(a) for a in class_attrs if a.name == 'Middleware']
            class_excluded = [m for a in class_attrs if a.name == 'WithoutMiddleware'
                              for m in string_list(a.arg(0, 'middleware'))]

            for method in class_methods(cls):
                action = method_name(method)
                if action == '__construct' or not is_public_method(method):
                    continue
                attrs = attributes_of(method)
                routes = [a for a in attrs if a.name in ROUTE_ATTRIBUTES]
                if not routes:
                    continue
                class_mw = _union(*(names for names, only, exclude in entries
                                    if _entry_applies(action, only, exclude)))
                method_mw = _union(
                    *(string_list(a.arg(0, 'middleware')) for a in attrs if a.name == 'Middleware'),
                    *(string_list(a.named.get('middleware')) for a in routes),
                )
                excluded = set(class_excluded)
                for a in attrs:
                    if a.name == 'WithoutMiddleware':
                        excluded.update(string_list(a.arg(0, 'middleware')))
                merged = tuple(m for m in _union(class_mw, method_mw) if m not in excluded)
                inherited = InheritedFrom.NONE
                if _has_auth_signal(class_mw) and not _has_auth_signal(method_mw):
                    inherited = InheritedFrom.CONTROLLER
                auth = resolve_middleware(merged, inherited)
                for attr in routes:
                    parsed = self._route_attribute(attr)
                    if parsed is None:
                        continue
                    path, methods = parsed
                    endpoints.append(Endpoint(
                        route=join_paths(prefix, path),
                        methods=methods,
                        type=EndpointType.CONTROLLER,
                        location=SourceLocation(file_path, method.line, method.column),
                        authorization=auth,
                        controller_name=controller,
                        action_name=action,
                    ))
        return endpoints

    @staticmethod
    def _route_attribute(attr) -> Optional[Tuple[str, Tuple[HttpMethod, ...]]]:
        fixed = ROUTE_ATTRIBUTES[attr.name]
        if fixed is not None:
            path_node = attr.arg(0, 'uri', 'path')
            path = path_node.string_value() if path_node is not None else None
            return (path, fixed) if path is not None else None

        positional = [p.string_value() for p in attr.positional]
        methods: List[HttpMethod] = []
        path = None
        # Route('get', '/uri') style
        if len(positional) >= 2 and positional[0] and positional[1] is not None \
                and parse_methods([positional[0]]):
            methods = parse_methods([positional[0]])
            path = positional[1]
        else:
            path_node = attr.arg(0, 'path', 'uri')
            path = path_node.string_value() if path_node is not None else None
            for key in ('methods', 'method'):
                if key in attr.named:
                    methods = parse_methods(string_list(attr.named[key]))
        if path is None:
            return None
        return path, tuple(methods or (HttpMethod.GET,))

    @staticmethod
    def _constructor_middleware(cls: TSNode) -> List[Tuple[Tuple[str, ...], Optional[List[str]], List[str]]]:
        """$this->middleware('auth')->only([...]) calls in __construct."""
        entries = []
        for method in class_methods(cls):
            if method_name(method) != '__construct':
                continue
            body = method.child_by_field('body')
            if body is None:
                continue
            for call in body.find_all('member_call_expression'):
                obj = call.child_by_field('object')
                if call.get_function_name() != 'middleware' or obj is None or obj.text != '$this':
                    continue
                names = tuple(m for arg in call.get_arguments() for m in string_list(arg))
                only: Optional[List[str]] = None
                exclude: List[str] = []
                cur = call
                parent = cur.parent
                while parent is not None and parent.type == 'member_call_expression' \
                        and parent.child_by_field('object') == cur:
                    scope = [a for arg in parent.get_arguments() for a in string_list(arg)]
                    if parent.get_function_name() == 'only':
                        only = scope
                    elif parent.get_function_name() == 'except':
                        exclude.extend(scope)
                    cur, parent = parent, parent.parent
                entries.append((names, only, exclude))
        return entries

    @staticmethod
    def _static_middleware(cls: TSNode) -> List[Tuple[Tuple[str, ...], Optional[List[str]], List[str]]]:
        """public static function middleware(): array { return ['auth', new Middleware(...)]; }"""
        entries = []
        for method in class_methods(cls):
            if method_name(method) != 'middleware' or method.first_child_of_type('static_modifier') is None:
                continue
            body = method.child_by_field('body')
            if body is None:
                continue
            for ret in body.find_all('return_statement'):
                value = ret.named_children[0] if ret.named_children else None
                for _, item in array_items(value):
                    if item.type == 'object_creation_expression' and class_ref_name(item) == 'Middleware':
                        entries.append(_middleware_args(item.get_arguments()))
                    else:
                        names = tuple(string_list(item))
                        if names:
                            entries.append((names, None, []))
        return entries


def _middleware_args(args: List[TSNode]):
    """('auth', only: [...], except: [...]) as passed to Middleware."""
    names: Tuple[str, ...] = ()
    only: Optional[List[str]] = None
    exclude: List[str] = []
    for i, arg in enumerate(args):
        label = arg.argument_name()
        if label == 'only':
            only = string_list(arg)
        elif label == 'except':
            exclude = string_list(arg)
        elif label in (None, 'middleware') and not names:
            names = tuple(string_list(arg))
    return names, only, exclude


def _middleware_entry(attr):
    return _middleware_args(attr.node.get_arguments())


def _entry_applies(action: str, only: Optional[List[str]], exclude: List[str]) -> bool:
    if only is not None and action not in only:
        return False
    return action not in exclude
