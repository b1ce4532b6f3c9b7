"""Template rendering benchmarks.

Renders precompiled templates with contexts of increasing size. Compilation
happens outside the timed call.

Template sizes:
- "minimal": single interpolation
- "small": loop over 5 items
- "medium": conditional around a loop over 20 posts
- "large": loop over 1000 rows with an index

Run with: pytest benchmarks/test_benchmark_render.py --benchmark-only
Compare: pytest benchmarks/test_benchmark_render.py --benchmark-compare
"""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from pytest_benchmark.fixture import BenchmarkFixture

from kiln import Environment

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

LARGE = """\
<table>
  {{~ rows:row:i }}
  <tr class="{{= 'odd' if i % 2 else 'even' }}"><td>{{= i }}</td><td>{{= row }}</td></tr>
  {{~ }}
</table>
"""


@pytest.fixture(scope="module")
def env() -> Environment:
    return Environment(imports={"site": "Benchmark"})


@pytest.mark.benchmark(group="render:minimal")
def test_render_minimal(benchmark: BenchmarkFixture, env: Environment) -> None:
    template = env.compile(MINIMAL)
    benchmark(template.render, name="Benchmark")


@pytest.mark.benchmark(group="render:small")
def test_render_small(benchmark: BenchmarkFixture, env: Environment) -> None:
    template = env.compile(SMALL)
    items = [SimpleNamespace(name=f"item {n}") for n in range(5)]
    benchmark(template.render, items=items)


@pytest.mark.benchmark(group="render:medium")
def test_render_medium(benchmark: BenchmarkFixture, env: Environment) -> None:
    template = env.compile(MEDIUM)
    user = SimpleNamespace(
        name="ada lovelace",
        bio="",
        posts=[SimpleNamespace(title=f"Post {n}", content="..." * 20) for n in range(20)],
    )
    benchmark(template.render, user=user)


@pytest.mark.benchmark(group="render:large")
def test_render_large(benchmark: BenchmarkFixture, env: Environment) -> None:
    template = env.compile(LARGE)
    benchmark(template.render, rows=[f"row {n}" for n in range(1000)])
