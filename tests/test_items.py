# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for item projections and scope visibility."""

from pawn_index.items import (
    build_outline,
    description_to_markdown,
    is_visible,
    project_completion,
    project_definition,
    project_hover,
    project_member_completion,
    project_outline,
    project_signature,
    scope_rank,
    signature_parameters,
)
from pawn_index.models import (
    GLOBAL_IDENTIFIER,
    CompletionKind,
    FileCompletions,
    Item,
    ItemKind,
    Position,
    Range,
    SymbolKind,
)

URI = "file:///ws/plugin.sp"


def make_item(name, kind, line=0, **fields):
    """Build an item on a given line."""
    return Item(
        name=name,
        kind=kind,
        uri=URI,
        range=Range.from_coords(line, 4, line, 4 + len(name)),
        full_range=Range.from_coords(line, 0, line + 2, 1),
        **fields,
    )


class TestScopeVisibility:
    """Tests for the three-tier visibility check."""

    def test_global_visible_outside_functions(self):
        """Test global variables are visible when no function encloses the cursor."""
        item = make_item("g_count", ItemKind.VARIABLE, function_name=GLOBAL_IDENTIFIER)
        assert is_visible(item, None, None)

    def test_local_hidden_outside_functions(self):
        """Test locals are not visible at file scope."""
        item = make_item("total", ItemKind.VARIABLE, function_name="Add")
        assert not is_visible(item, None, None)

    def test_local_visible_in_its_function(self):
        """Test a local is visible inside its own function only."""
        add = make_item("Add", ItemKind.FUNCTION)
        other = make_item("Other", ItemKind.FUNCTION)
        item = make_item("total", ItemKind.VARIABLE, function_name="Add")

        assert is_visible(item, add, None)
        assert not is_visible(item, other, None)

    def test_global_hidden_inside_function(self):
        """Test the function tier compares the parent name only."""
        add = make_item("Add", ItemKind.FUNCTION)
        item = make_item("g_count", ItemKind.VARIABLE, function_name=GLOBAL_IDENTIFIER)
        assert not is_visible(item, add, None)

    def test_method_local_requires_matching_container(self):
        """Test method locals need both the method and its container to match."""
        heal = make_item("Heal", ItemKind.METHOD, container_name="Player")
        player = make_item("Player", ItemKind.ENUM_STRUCT)
        monster = make_item("Monster", ItemKind.ENUM_STRUCT)
        item = make_item("amount", ItemKind.VARIABLE, function_name="Heal", container_name="Player")

        assert is_visible(item, heal, player)
        assert not is_visible(item, heal, monster)

    def test_method_local_hidden_in_same_named_method_elsewhere(self):
        """Test a local of Player.Heal stays hidden inside Monster.Heal."""
        monster_heal = make_item("Heal", ItemKind.METHOD, container_name="Monster")
        monster = make_item("Monster", ItemKind.ENUM_STRUCT)
        item = make_item("amount", ItemKind.VARIABLE, function_name="Heal", container_name="Player")

        assert not is_visible(item, monster_heal, monster)

    def test_method_local_hidden_in_same_named_function(self):
        """Test a method local is not visible inside a plain function of the same name."""
        heal = make_item("Heal", ItemKind.FUNCTION)
        item = make_item("amount", ItemKind.VARIABLE, function_name="Heal", container_name="Player")

        assert not is_visible(item, heal, None)

    def test_comparison_is_case_sensitive(self):
        """Test names differing only in case never match."""
        add = make_item("add", ItemKind.FUNCTION)
        item = make_item("total", ItemKind.VARIABLE, function_name="Add")
        assert not is_visible(item, add, None)

    def test_scope_rank(self):
        """Test method locals outrank function locals, which outrank globals."""
        method_local = make_item("x", ItemKind.VARIABLE, function_name="Heal", container_name="Player")
        function_local = make_item("x", ItemKind.VARIABLE, function_name="Add")
        global_var = make_item("x", ItemKind.VARIABLE, function_name=GLOBAL_IDENTIFIER)
        function = make_item("x", ItemKind.FUNCTION)

        assert scope_rank(method_local) == 2
        assert scope_rank(function_local) == 1
        assert scope_rank(global_var) == 0
        assert scope_rank(function) == 0


class TestCompletionProjection:
    """Tests for project_completion and project_member_completion."""

    def test_visible_variable_projects_full_candidate(self):
        """Test a visible variable carries label, kind and detail."""
        item = make_item(
            "g_count", ItemKind.VARIABLE, function_name=GLOBAL_IDENTIFIER, detail="int g_count"
        )
        candidate = project_completion(item)

        assert candidate is not None
        assert candidate.label == "g_count"
        assert candidate.kind == CompletionKind.VARIABLE
        assert candidate.detail == "int g_count"

    def test_invisible_variable_projects_none(self):
        """Test a variable out of scope yields None, not an error."""
        item = make_item("total", ItemKind.VARIABLE, function_name="Add")
        assert project_completion(item) is None

    def test_override_returns_identity_only(self):
        """Test override skips the scope check and drops detail."""
        item = make_item("total", ItemKind.VARIABLE, function_name="Add", detail="int total")
        candidate = project_completion(item, override=True)

        assert candidate is not None
        assert candidate.label == "total"
        assert candidate.kind == CompletionKind.VARIABLE
        assert candidate.detail is None
        assert candidate.documentation is None

    def test_top_level_kinds_always_visible(self):
        """Test functions, defines and enums ignore the cursor context."""
        add = make_item("Add", ItemKind.FUNCTION)
        for kind in (ItemKind.FUNCTION, ItemKind.DEFINE, ItemKind.ENUM_MEMBER, ItemKind.METHODMAP):
            assert project_completion(make_item("X", kind), add, None) is not None

    def test_members_not_offered_without_member_access(self):
        """Test methods, properties and fields only complete after 'expr.'."""
        for kind in (ItemKind.METHOD, ItemKind.PROPERTY, ItemKind.FIELD):
            item = make_item("Fire", kind, container_name="Weapon")
            assert project_completion(item) is None
            member = project_member_completion(item)
            assert member is not None
            assert member.label == "Fire"

    def test_member_completion_rejects_non_members(self):
        """Test project_member_completion ignores non-member kinds."""
        assert project_member_completion(make_item("Add", ItemKind.FUNCTION)) is None

    def test_documentation_rendered_as_markdown(self):
        """Test the description is converted for completion documentation."""
        item = make_item("Add", ItemKind.FUNCTION, description="Adds.\n@return Sum")
        candidate = project_completion(item)
        assert candidate is not None
        assert "_@return_ Sum" in candidate.documentation


class TestDefinitionAndHover:
    """Tests for project_definition and project_hover."""

    def test_definition_points_at_name(self):
        """Test the definition target is the declaring file and name range."""
        item = make_item("Add", ItemKind.FUNCTION, line=3, file_path="/ws/plugin.sp")
        target = project_definition(item)

        assert target.uri == URI
        assert target.path == "/ws/plugin.sp"
        assert target.range == Range.from_coords(3, 4, 3, 7)

    def test_include_definition_points_at_included_file(self):
        """Test an include resolves to the start of the included file."""
        item = make_item("helpers", ItemKind.INCLUDE, target_uri="file:///ws/helpers.inc")
        target = project_definition(item)

        assert target.uri == "file:///ws/helpers.inc"
        assert target.range == Range.from_coords(0, 0, 0, 0)

    def test_hover_none_without_detail(self):
        """Test hover is absent when no signature was recorded."""
        assert project_hover(make_item("Add", ItemKind.FUNCTION)) is None

    def test_hover_signature_and_documentation(self):
        """Test hover carries the signature and Markdown documentation."""
        item = make_item(
            "Add",
            ItemKind.FUNCTION,
            detail="int Add(int a, int b)",
            description="Adds two numbers.\n@param a First",
        )
        hover = project_hover(item)

        assert hover is not None
        assert hover.signature == "int Add(int a, int b)"
        assert "_@param_ `a` First" in hover.documentation


class TestSignatureProjection:
    """Tests for project_signature and signature_parameters."""

    def test_function_signature_with_param_docs(self):
        """Test parameters carry the text of their @param tags."""
        item = make_item(
            "Format",
            ItemKind.FUNCTION,
            detail='native int Format(char[] buffer, int maxlength, const char[] format = ",", any ...)',
            description="Formats a string.\n@param buffer     Destination.\n@param maxlength  Size of\n    the buffer.",
        )
        signature = project_signature(item, active_parameter=2)

        assert signature is not None
        assert signature.active_parameter == 2
        assert [p.label for p in signature.parameters] == [
            "char[] buffer",
            "int maxlength",
            'const char[] format = ","',
            "any ...",
        ]
        assert [p.documentation for p in signature.parameters] == [
            "Destination.",
            "Size of the buffer.",
            "",
            "",
        ]

    def test_non_callables_have_no_signature(self):
        """Test variables and callables without a recorded signature yield None."""
        variable = make_item("g_count", ItemKind.VARIABLE, function_name=GLOBAL_IDENTIFIER, detail="int g_count")
        bare = make_item("F", ItemKind.FUNCTION)

        assert project_signature(variable) is None
        assert project_signature(bare) is None

    def test_signature_parameters_split_at_top_level(self):
        """Test nested brackets and literals do not split parameters."""
        assert signature_parameters("void F()") == []
        assert signature_parameters("void F(float vec[3] = {0.0, 0.0, 0.0}, int c = ')')") == [
            "float vec[3] = {0.0, 0.0, 0.0}",
            "int c = ')'",
        ]
        assert signature_parameters("enum Color") == []


class TestOutline:
    """Tests for outline projection and nesting."""

    def test_variable_detail_is_type(self):
        """Test variables show their type, functions their signature."""
        variable = make_item(
            "g_count", ItemKind.VARIABLE, function_name=GLOBAL_IDENTIFIER, type_name="int", detail="int g_count"
        )
        function = make_item("Add", ItemKind.FUNCTION, detail="int Add()")

        assert project_outline(variable).detail == "int"
        assert project_outline(function).detail == "int Add()"

    def test_methodmap_constructor_kind(self):
        """Test a method named like its methodmap is a constructor."""
        ctor = make_item("Weapon", ItemKind.METHOD, container_name="Weapon")
        assert project_outline(ctor).kind == SymbolKind.CONSTRUCTOR

    def test_build_outline_nesting(self):
        """Test containers, enums and functions nest their children."""
        table = FileCompletions(uri=URI)
        table.add_item(make_item("helpers", ItemKind.INCLUDE, target_uri="file:///ws/helpers.inc"))
        table.add_item(make_item("g_count", ItemKind.VARIABLE, function_name=GLOBAL_IDENTIFIER))
        table.add_item(make_item("Color", ItemKind.ENUM))
        table.add_item(make_item("Color_Red", ItemKind.ENUM_MEMBER, parent_name="Color"))
        table.add_item(make_item("FLAG_A", ItemKind.ENUM_MEMBER))
        table.add_item(make_item("Player", ItemKind.ENUM_STRUCT))
        table.add_item(make_item("health", ItemKind.FIELD, container_name="Player"))
        table.add_item(make_item("Heal", ItemKind.METHOD, container_name="Player"))
        table.add_item(
            make_item("amount", ItemKind.VARIABLE, function_name="Heal", container_name="Player")
        )
        table.add_item(make_item("Add", ItemKind.FUNCTION))
        table.add_item(make_item("total", ItemKind.VARIABLE, function_name="Add"))

        outline = build_outline(table)
        by_name = {node.name: node for node in outline}

        assert list(by_name) == ["g_count", "Color", "FLAG_A", "Player", "Add"]
        assert [child.name for child in by_name["Color"].children] == ["Color_Red"]
        assert [child.name for child in by_name["Player"].children] == ["health", "Heal"]
        heal = by_name["Player"].children[1]
        assert [child.name for child in heal.children] == ["amount"]
        assert [child.name for child in by_name["Add"].children] == ["total"]


class TestDescriptionToMarkdown:
    """Tests for doc comment rendering."""

    def test_empty(self):
        """Test empty descriptions stay empty."""
        assert description_to_markdown("") == ""

    def test_tags(self):
        """Test @param and other tags become emphasized paragraphs."""
        text = description_to_markdown(
            "* Kicks a client.\n* @param client  Client index\n* @error Invalid client\n* @deprecated Use KickClientEx"
        )

        assert text.startswith("Kicks a client.")
        assert "_@param_ `client` Client index" in text
        assert "_@error_ Invalid client" in text
        assert "_@deprecated_ Use KickClientEx" in text
        assert "*" not in text.replace("_@", "")


def test_position_ordering():
    """Test positions compare by line then character and ranges include their end."""
    assert Position(1, 0) > Position(0, 99)
    assert Range.from_coords(0, 0, 2, 0).contains(Position(2, 0))
