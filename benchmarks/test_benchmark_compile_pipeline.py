"""Full compile pipeline benchmarks: blocks → lex → normalize → compile.

Measures Environment.compile() for the full pipeline, plus the lexer and
free-name analysis on their own for the largest template.

Run with: pytest benchmarks/test_benchmark_compile_pipeline.py --benchmark-only -v
"""

from __future__ import annotations

import pytest
from pytest_benchmark.fixture import BenchmarkFixture

from kiln import Environment
from kiln.analysis import free_names
from kiln.lexer import tokenize

MINIMAL = "{{= name }}"

SMALL = """\
<ul>
  {{~ items:item }}
  <li>{{= item.name.upper() }}</li>
  {{~ }}
</ul>
"""

MEDIUM = """\
{{? user }}
  <div class="profile">
    <h1>{{= user.name.title() }}</h1>
    <p>{{= user.bio or "No bio" }}</p>
    {{~ user.posts:post:i }}
      <article id="post-{{= i }}">
        <h2>{{= post.title }}</h2>
        <p>{{= post.content }}</p>
      </article>
    {{~ }}
  </div>
{{?? }}
  <p>Please log in.</p>
{{? }}
"""

LARGE = MEDIUM * 20

BLOCKS = """\
<html><head><title>{{> title }}</title></head><body>{{> body }}</body></html>
{{< title }}{{= site }}{{< }}
{{< body }}""" + MEDIUM + "{{< }}"


@pytest.mark.benchmark(group="compile:pipeline:minimal")
def test_compile_minimal(benchmark: BenchmarkFixture) -> None:
    """Full pipeline: minimal template."""
    env = Environment()
    benchmark(env.compile, MINIMAL)


@pytest.mark.benchmark(group="compile:pipeline:small")
def test_compile_small(benchmark: BenchmarkFixture) -> None:
    """Full pipeline: small template."""
    env = Environment()
    benchmark(env.compile, SMALL)


@pytest.mark.benchmark(group="compile:pipeline:medium")
def test_compile_medium(benchmark: BenchmarkFixture) -> None:
    """Full pipeline: medium template."""
    env = Environment()
    benchmark(env.compile, MEDIUM)


@pytest.mark.benchmark(group="compile:pipeline:large")
def test_compile_large(benchmark: BenchmarkFixture) -> None:
    """Full pipeline: large template."""
    env = Environment()
    benchmark(env.compile, LARGE)


@pytest.mark.benchmark(group="compile:pipeline:blocks")
def test_compile_blocks(benchmark: BenchmarkFixture) -> None:
    """Full pipeline: layout with block defines and placeholders."""
    env = Environment()
    benchmark(env.compile, BLOCKS)


@pytest.mark.benchmark(group="compile:stage:large")
def test_tokenize_large(benchmark: BenchmarkFixture) -> None:
    """Lexer only: large template."""
    benchmark(tokenize, LARGE)


@pytest.mark.benchmark(group="compile:stage:large")
def test_free_names_large(benchmark: BenchmarkFixture) -> None:
    """Free-name analysis only: every snippet of the large template."""
    snippets = [f"({f.value}\n)" for f in tokenize(LARGE) if f.is_directive and f.value]
    benchmark(free_names, snippets)
