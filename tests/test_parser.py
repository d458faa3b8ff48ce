"""
Tests for the script parser
"""
import pytest


SAMPLE = '''
import "./lib.fuse"

namespace audio.fx {
  extern echo: (sound) -> void
  fn reverb(amount)
  var level = 3
}

global score = 0
global list items = [1, "two"]
var counter = 0 as "Counter"

fn greet(name) {
  looks.say(name)
}

when flag {
  score += 1
}

when key "space" {
  counter = 0   # reset
}
'''


class TestParseProgram:
    """Top-level declarations."""

    def test_imports(self):
        from fusepack.script.model import ImportDecl
        from fusepack.script.parser import parse_program

        program = parse_program(SAMPLE)
        imports = list(program.of_type(ImportDecl))
        assert [i.spec for i in imports] == ["./lib.fuse"]
        assert imports[0].line == 2

    def test_namespace_block(self):
        from fusepack.script.model import NamespaceDecl
        from fusepack.script.parser import parse_program

        (ns,) = parse_program(SAMPLE).of_type(NamespaceDecl)
        assert ns.name == "audio.fx"
        assert ns.externs == {"echo": "(sound) -> void"}
        assert ns.functions == {"reverb": ("amount",)}
        assert ns.variables[0].variable.name == "level"
        assert ns.variables[0].default == 3

    def test_variable_declarations(self):
        from fusepack.script.model import VariableDecl, VariableKind
        from fusepack.script.parser import parse_program

        decls = list(parse_program(SAMPLE).of_type(VariableDecl))
        assert [d.variable.name for d in decls] == ["score", "items", "counter"]

        score, items, counter = decls
        assert score.variable.is_global
        assert score.declaration.default == 0
        assert items.variable.kind is VariableKind.LIST
        assert items.declaration.default == [1, "two"]
        assert not counter.variable.is_global
        assert counter.variable.export_name == "Counter"
        assert counter.variable.display_name == "Counter"

    def test_functions_and_handlers(self):
        from fusepack.script.model import EventHandler, FunctionDecl
        from fusepack.script.parser import parse_program

        program = parse_program(SAMPLE)
        (fn,) = program.of_type(FunctionDecl)
        assert fn.name == "greet"
        assert fn.params == ("name",)
        assert fn.body == ["looks.say(name)"]

        handlers = [(h.event, h.argument, h.body) for h in program.of_type(EventHandler)]
        assert handlers == [
            ("flag", None, ["score += 1"]),
            ("key", "space", ["counter = 0"]),
        ]

    def test_defaults_when_no_initializer(self):
        from fusepack.script.model import VariableDecl
        from fusepack.script.parser import parse_program

        decls = list(parse_program("var x\nvar list xs\n").of_type(VariableDecl))
        assert decls[0].declaration.default == 0
        assert decls[1].declaration.default == []

    def test_string_initializer_containing_as(self):
        from fusepack.script.model import VariableDecl
        from fusepack.script.parser import parse_program

        (decl,) = parse_program('var name = "a as \\"b\\""\n').of_type(VariableDecl)
        assert decl.declaration.default == 'a as "b"'
        assert decl.variable.export_name is None

    def test_path_is_recorded(self):
        from fusepack.script.parser import parse_program

        assert parse_program("", path="scripts/cat.fuse").path == "scripts/cat.fuse"


class TestBodies:
    """Brace matching and comment handling inside bodies."""

    def test_nested_blocks_are_kept(self):
        from fusepack.script.model import EventHandler
        from fusepack.script.parser import parse_program

        src = (
            "when flag {\n"
            "    if score > 1 {\n"
            '        say "hi { there"\n'
            "    }\n"
            "}\n"
        )
        (handler,) = parse_program(src).of_type(EventHandler)
        assert handler.body == ["if score > 1 {", '    say "hi { there"', "}"]

    def test_hash_inside_string_is_not_a_comment(self):
        from fusepack.script.model import EventHandler
        from fusepack.script.parser import parse_program

        src = 'when flag {\n  looks.say("#1")  # comment\n}\n'
        (handler,) = parse_program(src).of_type(EventHandler)
        assert handler.body == ['looks.say("#1")']

    def test_blank_lines_dropped(self):
        from fusepack.script.model import FunctionDecl
        from fusepack.script.parser import parse_program

        (fn,) = parse_program("fn f() {\n\n  a = 1\n\n}\n").of_type(FunctionDecl)
        assert fn.body == ["a = 1"]


class TestParseErrors:
    """Malformed input is reported with a line number."""

    def test_unexpected_top_level_statement(self):
        from fusepack.errors import ParseError
        from fusepack.script.parser import parse_program

        with pytest.raises(ParseError) as exc:
            parse_program("\n\nx = 1\n")
        assert exc.value.line == 3

    def test_missing_closing_brace(self):
        from fusepack.errors import ParseError
        from fusepack.script.parser import parse_program

        with pytest.raises(ParseError, match="Missing closing brace"):
            parse_program("when flag {\n  x = 1\n")

    def test_list_needs_list_initializer(self):
        from fusepack.errors import ParseError
        from fusepack.script.parser import parse_program

        with pytest.raises(ParseError):
            parse_program("var list xs = 3\n")
        with pytest.raises(ParseError):
            parse_program("var n = [1]\n")

    def test_object_literal_rejected(self):
        from fusepack.errors import ParseError
        from fusepack.script.parser import parse_program

        with pytest.raises(ParseError, match="Unsupported literal"):
            parse_program('var s = {"a": 1}\n')

    def test_duplicate_parameter(self):
        from fusepack.errors import ParseError
        from fusepack.script.parser import parse_program

        with pytest.raises(ParseError, match="Duplicate parameter"):
            parse_program("fn f(a, a) {\n}\n")

    def test_function_without_body(self):
        from fusepack.errors import ParseError
        from fusepack.script.parser import parse_program

        with pytest.raises(ParseError, match="needs a body"):
            parse_program("fn f()\n")

    def test_error_message_includes_context(self):
        from fusepack.errors import ParseError
        from fusepack.script.parser import parse_program

        with pytest.raises(ParseError) as exc:
            parse_program("bogus line\n")
        err = exc.value
        err.path = "cat.fuse"
        assert str(err) == "cat.fuse: Unexpected statement at top level (line 1)\n  >> bogus line"


class TestScanning:
    """Reference and assignment scanning used by the compiler."""

    def test_find_references_skips_strings(self):
        from fusepack.script.parser import find_references

        refs = find_references('looks.say(audio.fx.echo, "x.y")')
        assert refs == ["looks.say", "audio.fx.echo"]

    def test_find_references_ignores_numbers(self):
        from fusepack.script.parser import find_references

        assert find_references("x = 1.5") == []

    def test_assignment_target(self):
        from fusepack.script.parser import assignment_target

        assert assignment_target("score += 1") == "score"
        assert assignment_target("count -= 2") == "count"
        assert assignment_target("score == 1") is None
        assert assignment_target("looks.say(1)") is None
