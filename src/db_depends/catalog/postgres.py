"""PostgreSQL catalog backend.

Implements both ``DiscoveryService`` and ``CatalogResolver`` on top of the
system catalogs:

- Dependency edges come from ``pg_depend`` normal (``'n'``) dependencies.
  Rewrite rules are attributed to their view; constraints, triggers and
  column defaults to their table.  Edges through a rewrite rule are
  schema-bound (the view cannot be dropped or altered independently).
- Objects are relations in ``pg_class`` and routines in ``pg_proc``.
- Scripts come from ``pg_get_viewdef``, ``pg_get_functiondef``,
  ``pg_sequence`` and column/constraint metadata for tables.

Uses psycopg (v3) async connections.

Usage:
    async with PostgresCatalog(database_url) as catalog:
        root = await catalog.identify("public.orders", kind="table")
        tree = await catalog.discover([root], False, DependencyDirection.DEPENDENTS)
        info = await catalog.resolve(root)
        ddl = await catalog.script(root)
"""

import logging
from collections.abc import Collection

import psycopg
from psycopg import AsyncConnection

from db_depends.dependency.models import DependencyDirection, ObjectInfo, RawTreeNode
from db_depends.exceptions import CatalogError, ObjectNotFoundError
from db_depends.identity import ObjectIdentity, Urn

logger = logging.getLogger(__name__)

# Object key: ("class", oid) for pg_class rows, ("proc", oid) for pg_proc rows
ObjectKey = tuple[str, int]


_EDGES_QUERY = """
    SELECT DISTINCT
        CASE WHEN d.classid = 'pg_proc'::regclass THEN 'proc' ELSE 'class' END,
        COALESCE(r.ev_class, con.conrelid, t.tgrelid, ad.adrelid, d.objid),
        CASE WHEN d.refclassid = 'pg_proc'::regclass THEN 'proc' ELSE 'class' END,
        d.refobjid,
        d.classid = 'pg_rewrite'::regclass
    FROM pg_depend d
    LEFT JOIN pg_rewrite r
        ON d.classid = 'pg_rewrite'::regclass AND r.oid = d.objid
    LEFT JOIN pg_constraint con
        ON d.classid = 'pg_constraint'::regclass AND con.oid = d.objid
    LEFT JOIN pg_trigger t
        ON d.classid = 'pg_trigger'::regclass AND t.oid = d.objid
    LEFT JOIN pg_attrdef ad
        ON d.classid = 'pg_attrdef'::regclass AND ad.oid = d.objid
    WHERE d.deptype = 'n'
      AND d.classid IN (
          'pg_class'::regclass, 'pg_proc'::regclass, 'pg_rewrite'::regclass,
          'pg_constraint'::regclass, 'pg_trigger'::regclass, 'pg_attrdef'::regclass
      )
      AND d.refclassid IN ('pg_class'::regclass, 'pg_proc'::regclass)
"""

_CLASS_QUERY = """
    SELECT
        c.oid,
        n.nspname,
        c.relname,
        c.relkind::text,
        pg_get_userbyid(c.relowner),
        quote_ident(n.nspname) || '.' || quote_ident(c.relname)
    FROM pg_class c
    JOIN pg_namespace n ON n.oid = c.relnamespace
"""

_PROC_QUERY = """
    SELECT
        p.oid,
        n.nspname,
        p.proname || '(' || pg_get_function_identity_arguments(p.oid) || ')',
        p.prokind::text,
        pg_get_userbyid(p.proowner),
        quote_ident(n.nspname) || '.' || quote_ident(p.proname)
    FROM pg_proc p
    JOIN pg_namespace n ON n.oid = p.pronamespace
"""


class _Described:
    """Catalog row for one object, as returned by ``_CLASS_QUERY``/``_PROC_QUERY``."""

    __slots__ = ("key", "schema", "name", "type", "owner", "qualified")

    def __init__(self, key: ObjectKey, schema: str, name: str, type_: str,
                 owner: str | None, qualified: str) -> None:
        self.key = key
        self.schema = schema
        self.name = name
        self.type = type_
        self.owner = owner
        self.qualified = qualified


class PostgresCatalog:
    """Dependency discovery and object resolution for PostgreSQL.

    Usage:
        async with PostgresCatalog(database_url) as catalog:
            await catalog.test_connection()
            root = await catalog.identify("public.orders")
            tree = await catalog.discover(
                [root], False, DependencyDirection.DEPENDENTS
            )
    """

    SYSTEM_SCHEMAS = frozenset({"pg_catalog", "information_schema", "pg_toast"})

    RELKIND_TYPES = {
        "r": "Table",
        "v": "View",
        "m": "MaterializedView",
        "S": "Sequence",
        "f": "ForeignTable",
        "p": "PartitionedTable",
    }

    PROKIND_TYPES = {
        "f": "Function",
        "w": "Function",
        "p": "Procedure",
        "a": "Aggregate",
    }

    KIND_ALIASES = {
        "table": "Table",
        "view": "View",
        "materializedview": "MaterializedView",
        "matview": "MaterializedView",
        "sequence": "Sequence",
        "foreigntable": "ForeignTable",
        "partitionedtable": "PartitionedTable",
        "function": "Function",
        "procedure": "Procedure",
        "aggregate": "Aggregate",
    }

    def __init__(
        self,
        database_url: str,
        connect_timeout: int = 10,
        server_name: str | None = None,
        max_nodes: int = 10000,
    ) -> None:
        """Initialize with database connection URL.

        Args:
            database_url: PostgreSQL connection URL.
            connect_timeout: Connection timeout in seconds.
            server_name: Server name used in URNs.  Defaults to the host
                reported by the connection.
            max_nodes: Upper bound on the size of one discovered tree.
        """
        self._database_url = database_url
        self._connect_timeout = connect_timeout
        self._server_name = server_name
        self._max_nodes = max_nodes
        self._conn: AsyncConnection | None = None
        self._database: str | None = None

    async def __aenter__(self) -> "PostgresCatalog":
        """Async context manager entry - opens connection."""
        self._conn = await psycopg.AsyncConnection.connect(
            self._database_url,
            connect_timeout=self._connect_timeout,
            autocommit=True,
        )
        if self._server_name is None:
            self._server_name = self._conn.info.host or "localhost"
        self._database = self._conn.info.dbname
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit - closes connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    @property
    def server_name(self) -> str | None:
        return self._server_name

    @property
    def database(self) -> str | None:
        return self._database

    # ------------------------------------------------------------------
    # Low-level helpers
    # ------------------------------------------------------------------

    def _require_conn(self) -> AsyncConnection:
        if not self._conn:
            raise RuntimeError("Catalog not connected. Use async with statement.")
        return self._conn

    async def _fetch(self, query: str, params: tuple = ()) -> list[tuple]:
        """Run a query and return all rows, converting driver errors."""
        conn = self._require_conn()
        try:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                return await cur.fetchall()
        except psycopg.Error as e:
            raise CatalogError(f"Catalog query failed: {e}") from e

    def _type_of(self, key: ObjectKey, code: str) -> str | None:
        if key[0] == "class":
            return self.RELKIND_TYPES.get(code)
        return self.PROKIND_TYPES.get(code)

    def _to_described(self, kind: str, row: tuple) -> _Described | None:
        oid, schema, name, code, owner, qualified = row
        key = (kind, oid)
        type_ = self._type_of(key, code)
        if type_ is None:
            return None
        return _Described(key, schema, name, type_, owner, qualified)

    def _urn(self, obj: _Described) -> Urn:
        return Urn.build(
            self._server_name or "localhost",
            self._database or "",
            obj.type,
            obj.name,
            schema=obj.schema,
        )

    async def _describe(self, keys: Collection[ObjectKey]) -> dict[ObjectKey, _Described]:
        """Describe many objects at once; unknown kinds are left out."""
        class_oids = [oid for kind, oid in keys if kind == "class"]
        proc_oids = [oid for kind, oid in keys if kind == "proc"]
        described: dict[ObjectKey, _Described] = {}

        if class_oids:
            rows = await self._fetch(_CLASS_QUERY + " WHERE c.oid = ANY(%s::oid[])", (class_oids,))
            for row in rows:
                obj = self._to_described("class", row)
                if obj:
                    described[obj.key] = obj
        if proc_oids:
            rows = await self._fetch(_PROC_QUERY + " WHERE p.oid = ANY(%s::oid[])", (proc_oids,))
            for row in rows:
                obj = self._to_described("proc", row)
                if obj:
                    described[obj.key] = obj

        return described

    async def _locate(self, identity: ObjectIdentity) -> _Described:
        """Find the catalog row behind a URN.

        Raises:
            ObjectNotFoundError: If the URN names another server/database,
                an unsupported type, or an object that does not exist.
        """
        try:
            urn = identity if isinstance(identity, Urn) else Urn(str(identity))
        except ValueError as e:
            raise ObjectNotFoundError(identity, f"Not a valid URN: {identity}") from e

        if urn.server != self._server_name or urn.database != self._database:
            raise ObjectNotFoundError(
                identity,
                f"{identity} is not on {self._server_name}/{self._database}",
            )

        relkinds = [code for code, t in self.RELKIND_TYPES.items() if t == urn.type]
        prokinds = [code for code, t in self.PROKIND_TYPES.items() if t == urn.type]
        name = urn.name or ""
        schema = urn.schema or "public"

        if relkinds:
            kind = "class"
            rows = await self._fetch(
                _CLASS_QUERY
                + " WHERE n.nspname = %s AND c.relname = %s AND c.relkind::text = ANY(%s)",
                (schema, name, relkinds),
            )
        elif prokinds:
            kind = "proc"
            if "(" in name:
                condition = (
                    " AND p.proname || '(' || pg_get_function_identity_arguments(p.oid)"
                    " || ')' = %s"
                )
            else:
                condition = " AND p.proname = %s"
            rows = await self._fetch(
                _PROC_QUERY
                + " WHERE n.nspname = %s AND p.prokind::text = ANY(%s)"
                + condition,
                (schema, prokinds, name),
            )
        else:
            raise ObjectNotFoundError(identity, f"Unsupported object type: {urn.type}")

        if not rows:
            raise ObjectNotFoundError(identity)
        if len(rows) > 1:
            raise ObjectNotFoundError(
                identity,
                f"{identity} is ambiguous ({len(rows)} overloads); "
                f"include the argument list in the name",
            )
        obj = self._to_described(kind, rows[0])
        if obj is None:
            raise ObjectNotFoundError(identity)
        return obj

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def test_connection(self) -> bool:
        """Run ``SELECT 1`` against the open connection.

        Raises:
            RuntimeError: If not connected.
            ConnectionError: If the query fails.
        """
        conn = self._require_conn()
        try:
            async with conn.cursor() as cur:
                await cur.execute("SELECT 1")
                await cur.fetchone()
        except psycopg.Error as e:
            raise ConnectionError(f"Connection test failed: {e}") from e
        return True

    async def identify(self, name: str, kind: str = "table") -> Urn:
        """Build and verify the URN of ``[schema.]name``.

        Args:
            name: Object name, optionally schema-qualified.  Routine names
                may carry their argument list, e.g. ``public.f(integer)``.
            kind: Object kind (``table``, ``view``, ``matview``,
                ``sequence``, ``function``, ``procedure``, ...).

        Raises:
            ValueError: If ``kind`` is unknown.
            ObjectNotFoundError: If the object does not exist.
        """
        self._require_conn()
        type_ = self.KIND_ALIASES.get(kind.lower().replace("-", "").replace("_", ""))
        if type_ is None:
            raise ValueError(
                f"Unknown object kind '{kind}'. "
                f"Known kinds: {', '.join(sorted(self.KIND_ALIASES))}"
            )

        paren = name.find("(")
        head = name if paren < 0 else name[:paren]
        if "." in head:
            schema, _, rest = name.partition(".")
        else:
            schema, rest = "public", name

        urn = Urn.build(self._server_name or "localhost", self._database or "", type_, rest, schema=schema)
        obj = await self._locate(urn)
        return self._urn(obj)

    async def discover(
        self,
        roots: Collection[ObjectIdentity],
        allow_system_objects: bool,
        direction: DependencyDirection,
    ) -> RawTreeNode:
        """Discover the dependency tree below ``roots``.

        The tree is unfolded per path: an object reachable through two
        paths appears under both.  A node already on its own ancestor path
        is not expanded again.

        Raises:
            ObjectNotFoundError: If a root does not exist.
            CatalogError: On query failure or when the tree exceeds
                ``max_nodes``.
        """
        root_objs = [await self._locate(root) for root in roots]

        children: dict[ObjectKey, list[tuple[ObjectKey, bool]]] = {}
        for dep_kind, dep_oid, ref_kind, ref_oid, via_rewrite in await self._fetch(_EDGES_QUERY):
            if not dep_oid:
                continue
            dep, ref = (dep_kind, dep_oid), (ref_kind, ref_oid)
            if dep == ref:
                continue
            if direction == DependencyDirection.DEPENDENTS:
                children.setdefault(ref, []).append((dep, bool(via_rewrite)))
            else:
                children.setdefault(dep, []).append((ref, bool(via_rewrite)))

        involved = {key for edges in children.values() for key, _ in edges}
        described = await self._describe(involved)
        for obj in root_objs:
            described[obj.key] = obj

        def allowed(key: ObjectKey) -> bool:
            obj = described.get(key)
            if obj is None:
                return False
            return allow_system_objects or obj.schema not in self.SYSTEM_SCHEMAS

        # Merge duplicate edges (an object referenced through several
        # columns or rules); schema-bound wins.
        merged: dict[ObjectKey, list[tuple[ObjectKey, bool]]] = {}
        for key, edges in children.items():
            bound: dict[ObjectKey, bool] = {}
            for child, via_rewrite in edges:
                if allowed(child):
                    bound[child] = bound.get(child, False) or via_rewrite
            merged[key] = sorted(
                bound.items(),
                key=lambda item: (described[item[0]].schema, described[item[0]].name),
            )

        top_nodes = []
        # (key, node, ancestors)
        stack: list[tuple[ObjectKey, RawTreeNode, frozenset[ObjectKey]]] = []
        for obj in root_objs:
            node = RawTreeNode(identity=self._urn(obj))
            top_nodes.append(node)
            stack.append((obj.key, node, frozenset()))
        tree_root = RawTreeNode.build(None, top_nodes)

        total = len(top_nodes)
        while stack:
            key, node, ancestors = stack.pop()
            path = ancestors | {key}
            child_nodes = []
            for child_key, via_rewrite in merged.get(key, []):
                if child_key in path:
                    continue
                child = RawTreeNode(
                    identity=self._urn(described[child_key]),
                    is_schema_bound=via_rewrite,
                )
                child_nodes.append(child)
                stack.append((child_key, child, path))

            total += len(child_nodes)
            if total > self._max_nodes:
                raise CatalogError(
                    f"Dependency tree exceeds {self._max_nodes} nodes"
                )

            previous = None
            for child in child_nodes:
                if previous is None:
                    node.first_child = child
                else:
                    previous.next_sibling = child
                previous = child

        logger.debug(
            "Discovered %d nodes (%s) for %d roots", total, direction.value, len(root_objs)
        )
        return tree_root

    async def resolve(self, identity: ObjectIdentity) -> ObjectInfo:
        """Describe one object.

        Views and materialized views are reported as schema-bound: their
        definition is bound to the objects they read from.

        Raises:
            ObjectNotFoundError: If the object no longer exists.
        """
        obj = await self._locate(identity)
        return ObjectInfo(
            identity=self._urn(obj),
            name=obj.name,
            kind=obj.type,
            owner=obj.owner,
            is_schema_bound=obj.type in ("View", "MaterializedView"),
        )

    async def script(self, identity: ObjectIdentity) -> str:
        """Return the creation script of one object.

        Raises:
            ObjectNotFoundError: If the object no longer exists.
            CatalogError: On query failure.
        """
        obj = await self._locate(identity)
        oid = obj.key[1]

        if obj.type in ("View", "MaterializedView"):
            rows = await self._fetch("SELECT pg_get_viewdef(%s::oid, true)", (oid,))
            keyword = "VIEW" if obj.type == "View" else "MATERIALIZED VIEW"
            prefix = "CREATE OR REPLACE" if obj.type == "View" else "CREATE"
            return f"{prefix} {keyword} {obj.qualified} AS\n{rows[0][0]}"

        if obj.type == "Aggregate":
            return f"-- Aggregate {obj.qualified}: definition not scriptable"

        if obj.key[0] == "proc":
            rows = await self._fetch("SELECT pg_get_functiondef(%s::oid)", (oid,))
            return f"{rows[0][0].rstrip()};"

        if obj.type == "Sequence":
            return await self._script_sequence(obj)

        return await self._script_table(obj)

    async def _script_sequence(self, obj: _Described) -> str:
        rows = await self._fetch(
            """
            SELECT seqincrement, seqmin, seqmax, seqstart, seqcache, seqcycle
            FROM pg_sequence
            WHERE seqrelid = %s::oid
            """,
            (obj.key[1],),
        )
        if not rows:
            raise ObjectNotFoundError(obj.qualified)
        increment, minimum, maximum, start, cache, cycle = rows[0]
        return (
            f"CREATE SEQUENCE {obj.qualified}\n"
            f"    INCREMENT BY {increment}\n"
            f"    MINVALUE {minimum}\n"
            f"    MAXVALUE {maximum}\n"
            f"    START WITH {start}\n"
            f"    CACHE {cache}\n"
            f"    {'CYCLE' if cycle else 'NO CYCLE'};"
        )

    async def _script_table(self, obj: _Described) -> str:
        """Script a table from its columns and constraints."""
        oid = obj.key[1]
        columns = await self._fetch(
            """
            SELECT
                quote_ident(a.attname),
                format_type(a.atttypid, a.atttypmod),
                a.attnotnull,
                pg_get_expr(ad.adbin, ad.adrelid)
            FROM pg_attribute a
            LEFT JOIN pg_attrdef ad
                ON ad.adrelid = a.attrelid AND ad.adnum = a.attnum
            WHERE a.attrelid = %s::oid
              AND a.attnum > 0
              AND NOT a.attisdropped
            ORDER BY a.attnum
            """,
            (oid,),
        )
        constraints = await self._fetch(
            """
            SELECT quote_ident(conname), pg_get_constraintdef(oid)
            FROM pg_constraint
            WHERE conrelid = %s::oid
            ORDER BY contype DESC, conname
            """,
            (oid,),
        )

        lines: list[str] = []
        for name, data_type, not_null, default in columns:
            line = f"    {name} {data_type}"
            if default is not None:
                line += f" DEFAULT {default}"
            if not_null:
                line += " NOT NULL"
            lines.append(line)
        for name, definition in constraints:
            lines.append(f"    CONSTRAINT {name} {definition}")

        body = ",\n".join(lines)
        suffix: list[str] = []
        if obj.type == "PartitionedTable":
            rows = await self._fetch("SELECT pg_get_partkeydef(%s::oid)", (oid,))
            suffix.append(f" PARTITION BY {rows[0][0]}")
        if obj.type == "ForeignTable":
            rows = await self._fetch(
                """
                SELECT quote_ident(s.srvname)
                FROM pg_foreign_table ft
                JOIN pg_foreign_server s ON s.oid = ft.ftserver
                WHERE ft.ftrelid = %s::oid
                """,
                (oid,),
            )
            suffix.append(f" SERVER {rows[0][0]}" if rows else "")
            return f"CREATE FOREIGN TABLE {obj.qualified} (\n{body}\n){''.join(suffix)};"

        return f"CREATE TABLE {obj.qualified} (\n{body}\n){''.join(suffix)};"
