# llprospero

A small compiler toolkit for straight-line expression programs of the kind used
to describe implicit 2D shapes. A program has one instruction per line, each
naming its result, using `const`, `var-x`, `var-y`, `var-z`, `neg`, `square`,
`sqrt`, `add`, `sub`, `mul`, `min` and `max`. Anything after a `#` is a
comment. The value of the last instruction decides whether a point is inside
the shape.

```
_0 const 2.95
_1 var-x
_2 var-y
_3 square _1
_4 square _2
_5 add _3 _4
_6 sub _0 _5
```

Constants are single-precision floats.

## Installing

```
pip install .
```

Every command reads a program on standard input and writes to standard output.
A program that cannot be read (unknown instruction, undefined or redefined
name, missing or extra token, bad constant, no instructions at all) makes the
command print `error: ...` on standard error and exit with status 1.

## Commands

- `llp-print` parses a program and prints it back with instructions numbered
  `v0`, `v1`, ...
- `llp-simplify` removes duplicate instructions (sorting the operands of
  commutative operators first) and folds negations into neighbouring
  operations.
- `llp-reassociate` regroups chains of `add`/`sub`, `mul`, `min` and `max` so
  that sub-expressions depending on fewer variables are computed separately.
- `llp-reorder` drops instructions the result does not use and puts the rest in
  depth-first order from the result.
- `llp-memoize` splits the program into functions by which variables each value
  depends on (`x`, `y`, `xy`, `z`, ...), so values that depend only on a row or
  a column need computing once. It prints the shared constants, then each
  non-empty function with its `load` instructions and `# store` lines.
- `llp-interp [SIZE]` renders the shape as a binary PBM (`P4`) image, `SIZE`
  pixels wide and tall (512 by default), covering the square from -1 to 1 on
  each axis, top row first. A pixel is set where the result's sign bit is
  clear.
- `llp-x86` writes AT&T-syntax x86-64 assembly using AVX instructions, with one
  global function per variable set (`x`, `y`, `xy`, `z`, `xz`, `yz`, `xyz`),
  a `<set>_size` count of each function's outputs, a `stride` value and the
  constant table.

The passes chain through pipes:

```
llp-simplify < shape.vm | llp-reassociate | llp-reorder > optimized.vm
llp-interp 1024 < optimized.vm > shape.pbm
llp-x86 < optimized.vm > shape.s
```

### `llp-x86` options

- `--memoize BOOL` (default `true`): split the program by variable set, as
  `llp-memoize` does. With `false` everything goes into one function.
- `--vectorize BOOL` (default `true`): process four points at a time in SIMD
  registers.
- `--sink-loads MODE` (default `spill-any`): when arithmetic instructions may
  read an operand straight from memory instead of loading it into a register.
  Modes are `none`, `spill-any`, `prefer-dead`, `require-dead` and `all`.

`BOOL` accepts `true`/`false`, `yes`/`no`, `on`/`off`, `y`/`n`, `t`/`f` and
`1`/`0`.

## Using it as a library

```python
from llprospero import irio
from llprospero.ir import Insts
from llprospero.simplify import Simplify
from llprospero.reorder import reorder
from llprospero.interp import interp

with open("shape.vm") as f:
    insts = irio.read(f, Simplify(Insts()))
reorder(insts)

with open("shape.pbm", "wb") as out:
    interp(out, insts, 256)
```

`irio.read` feeds each parsed instruction to an `InstSink` (`Insts`,
`Simplify`, `MemoBuilder` or `UnmemoBuilder`) and returns what the sink's
`finish` produces. Bad input raises a subclass of `irio.ParseError`, which is
itself a `ValueError`. `irio.write` and `irio.write_memoized` print instruction
lists and memoized programs; `reassociate.reassociate(insts.pool, Insts())`
runs the regrouping pass; `codegen.x86.write(out, X86Config(), memoized)`
writes assembly.

## What it does not do

- The generated assembly is only written out. The package does not assemble
  it, link it, or supply a driver program that calls the generated functions
  and turns their results into an image.
- The output of `llp-memoize` cannot be read back by the other commands: the
  reader does not accept `load` instructions.
- `llp-memoize` and `llp-x86` reject programs whose result, or any operation,
  depends on no variable at all; constant expressions are not folded.