"""Strudel quick reference served to tool callers as strudel://reference."""

REFERENCE_URI = "strudel://reference"

STRUDEL_REFERENCE = """# Strudel Live Coding Reference

The bridge only delivers code: the caller writes the Strudel pattern and
`execute_pattern` places it in the live editor and evaluates it.

## Pattern structure

```javascript
setcps(0.5)          // tempo in cycles per second
stack(               // layers play together
  s("bd*4"),
  s("~ sd ~ sd"),
  note("c2 eb2 g2 bb2").s("sawtooth")
)
```

A single layer needs no `stack`: `s("bd sd [~ bd] sd")`.

## Mini-notation

| Syntax | Meaning |
|---|---|
| `"a b c"` | sequence, one cycle |
| `"a*4"` | repeat within the step |
| `"[a b]"` | subdivide a step |
| `"<a b>"` | alternate per cycle |
| `"~"` | rest |
| `"a, b"` | play together |
| `"a?"` | random drop |
| `"a(3,8)"` | euclidean rhythm |

## Sounds

- Drums: `s("bd sd hh oh cp rim")`, banks with `.bank("tr808")` / `.bank("tr909")`
- Synths: `note("c3 e3 g3").s("sawtooth" | "square" | "triangle" | "sine")`
- Scales: `n("0 2 4 7").scale("C:minor")`

## Effects

`.gain(0.8)`, `.lpf(800)`, `.hpf(200)`, `.room(0.5)`, `.delay(0.25)`,
`.pan(sine)`, `.speed(2)`, `.crush(4)`, `.attack(0.01)`, `.release(0.3)`

## Time

`.fast(2)`, `.slow(2)`, `.every(4, x => x.rev())`, `.sometimes(x => x.speed(2))`,
`.jux(rev)`, `.off(1/8, x => x.add(12))`

## Stopping

`hush()` stops everything; the `stop_pattern` tool does the same.
"""
