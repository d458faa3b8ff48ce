"""
Tests for the reference compiler
"""
import pytest


def _compile(src, scope_names=(), namespaces=None):
    from fusepack.script.builtins import builtin_namespaces
    from fusepack.script.compiler import compile_program
    from fusepack.script.model import Scope, Variable
    from fusepack.script.parser import parse_program

    program = parse_program(src, path="test.fuse")
    scope = Scope({n: Variable(n, is_global=True) for n in scope_names})
    return compile_program(program, scope, namespaces or builtin_namespaces())


class TestDiscovery:
    """Variables declared by the program."""

    def test_declarations_in_source_order(self):
        result = _compile("var b = 1\nglobal a = 2\nvar list c\n")
        assert [d.variable.name for d in result.variables] == ["b", "a", "c"]
        assert [d.variable.is_global for d in result.variables] == [False, True, False]

    def test_duplicate_declaration(self):
        from fusepack.errors import CompileError

        with pytest.raises(CompileError, match="declared twice") as exc:
            _compile("var a = 1\nvar a = 2\n")
        assert exc.value.line == 2

    def test_duplicate_function(self):
        from fusepack.errors import CompileError

        with pytest.raises(CompileError, match="defined twice"):
            _compile("fn f() {\n}\nfn f() {\n}\n")


class TestChecks:
    """Assignments and dotted references must resolve."""

    def test_assignment_to_scope_variable(self):
        result = _compile("when flag {\n  score += 1\n}\n", scope_names=["score"])
        (script,) = result.graph.scripts
        assert [s.text for s in script.statements] == ["score += 1"]

    def test_assignment_to_own_declaration(self):
        result = _compile("var n = 0\nwhen flag {\n  n = 5\n}\n")
        assert len(result.graph.scripts) == 1

    def test_assignment_to_parameter(self):
        result = _compile("fn f(x) {\n  x = x + 1\n}\n")
        assert result.graph.functions[0].params == ("x",)

    def test_assignment_to_undeclared(self):
        from fusepack.errors import CompileError

        with pytest.raises(CompileError, match="undeclared variable 'ghost'"):
            _compile("when flag {\n  ghost = 1\n}\n")

    def test_builtin_reference(self):
        result = _compile('when flag {\n  looks.say("hi")\n}\n')
        assert result.graph.scripts[0].statements[0].text == 'looks.say("hi")'

    def test_unresolved_reference(self):
        from fusepack.errors import CompileError

        with pytest.raises(CompileError, match="Unresolved reference 'audio.echo'") as exc:
            _compile("when flag {\n  audio.echo(1)\n}\n")
        assert exc.value.context == "audio.echo(1)"

    def test_reference_declared_in_namespace(self):
        from fusepack.namespace import merge
        from fusepack.script.builtins import builtin_namespaces
        from fusepack.script.frontend import ReferenceFrontend
        from fusepack.script.parser import parse_program

        src = "namespace audio {\n  extern echo: any\n}\nwhen flag {\n  audio.echo(1)\n}\n"
        own = ReferenceFrontend().collect_namespaces(parse_program(src))
        result = _compile(src, namespaces=merge(builtin_namespaces(), own))
        assert len(result.graph.scripts) == 1

    def test_dotted_reference_on_parameter(self):
        result = _compile("fn f(p) {\n  looks.say(p.name)\n}\n")
        assert len(result.graph.functions) == 1


class TestGraph:
    """Lowered instruction graph."""

    def test_functions_and_scripts(self):
        src = (
            "fn greet(name) {\n  looks.say(name)\n}\n"
            "when flag {\n  greet(\"a\")\n}\n"
            "when broadcast \"go\" {\n  control.wait(1)\n}\n"
        )
        graph = _compile(src).graph
        assert [f.name for f in graph.functions] == ["greet"]
        assert [(s.event, s.argument) for s in graph.scripts] == [("flag", None), ("broadcast", "go")]
        assert not graph.is_empty()

    def test_empty_program(self):
        result = _compile("")
        assert result.graph.is_empty()
        assert result.variables == []
