# dpctool

Tools for working with the DPC archives of FUEL:

- unpack a DPC into a directory of object files and a `manifest.json`,
- build a DPC back from such a directory, optionally merging duplicate
  reference ranges in the pool manifest,
- validate a DPC and dump its layout as JSON,
- split a single object file into its class-object part and its data part,
- compute the CRC32 name hashes the engine uses to identify objects.

Nothing beyond the Python standard library is needed.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Command line

Two commands are installed.

### `dpctool-crc32`

Hashes names or binary data with one of the algorithms `asobo`,
`asobo_alt` or `ieee` (chosen with the required `-a/--algorithm`):

```
dpctool-crc32 --help
dpctool-crc32 -a asobo names.txt -o hashes.txt
dpctool-crc32 -a asobo -I
```

In name mode each input line is hashed (surrounding whitespace is trimmed
unless `-L/--literal` is given) and written as `<hash> "<name>"`. Values are
signed unless `-U/--unsigned` is given.

- `-I/--interactive` reads from standard input and writes to standard
  output, flushing after every line. It cannot be combined with input or
  output paths.
- Without `-o/--output` the results go to standard output, flushed after
  every line.
- `-b/--binary` hashes the whole input as one blob; `-s/--offset` and
  `-H/--length` select a slice and require `-b`. In binary mode the value
  is printed unsigned when writing to standard output and signed when
  writing to an output file; `-U` does not change this.

Run with no arguments, the command prints its help and exits with status 2.

### `dpctool-fuel`

```
dpctool-fuel --help
dpctool-fuel extract level.DPC level_extracted
dpctool-fuel create level_extracted level_rebuilt.DPC -f
dpctool-fuel validate level_rebuilt.DPC level_rebuilt.json
dpctool-fuel split objects/123.Mesh_Z parts/123.Mesh_Z
```

The first argument is one of `extract`, `create`, `validate` or `split`,
followed by an input and an output path. General options:

- `-q/--quiet`: no progress messages (they are written to standard error),
- `-f/--force`: overwrite existing output without asking,
- `-u/--unsafe`: accept version strings that are not in the known list,
- `-O/--optimization`: when creating, merge duplicate reference ranges of
  the pool,
- `-l/--lz` and `-r/--recursive`: accepted, but see below.

Options for the FUEL backend come after `--`:

- `-p/--unoptimized-pool`: keep the pool's reference ranges as they are,
  even with `-O`,
- `-n/--no-pool`: build the archive without a pool,
- `-s/--sound-sample-rate` and `-T/--effective-version-string`: parsed
  and stored on the backend, default `44100` and the v1.381.67.09 version
  string.

```
dpctool-fuel create level_extracted level.DPC -f -O -- -n
```

When the output already exists and `-f` is not given, you are asked whether
to exit, skip this file or overwrite it. Choosing exit prints `Aborting`
and the command returns status 1; format and I/O errors are printed as
`error: ...` with status 1.

## Library use

```python
from dpctool.crc32 import asobo_hash, ieee_hash
from dpctool.options import Options
from dpctool.fuel_dpc import FuelDPC

print(asobo_hash(b"Mesh_Z"))

options = Options(quiet=True, force=True)
backend = FuelDPC(options, [])
backend.extract("level.DPC", "level_extracted")
backend.create("level_extracted", "level_rebuilt.DPC")
backend.validate("level_rebuilt.DPC", "level_rebuilt.json")
```

`Options` has the fields `quiet`, `force`, `unsafe`, `lz`, `optimization`
and `recursive`, all `False` by default. `FuelDPC.ask` may be set to a
callable `(prompt, choices) -> int` that answers the overwrite question
instead of the console (0 exit, 1 skip, 2 overwrite); choosing exit raises
`dpctool.options.OverwriteAborted`. `extract`, `create` and `validate`
return `None` when a file is skipped.

The lower-level pieces can be used on their own:

- `dpctool.crc32`: `asobo_hash`, `asobo_alt_hash`, `ieee_hash`,
  `generate_names`, `generate_binary`,
- `dpctool.fuel_format`: the binary structures (`PrimaryHeader`,
  `ObjectHeader`, `BlockDescription`, `PoolManifest`, `ReferenceRecord`,
  ...), `padded_size`, `class_name_for`, `class_crc32_for`; malformed data
  raises `FormatError`,
- `dpctool.fuel_manifest`: `Manifest.loads` / `Manifest.dumps` for
  `manifest.json`,
- `dpctool.fuel_pool`: `optimize_pool`, `reference_counts`,
  `pool_manifest_bytes`,
- `dpctool.fuel_extract.extract_dpc`, `dpctool.fuel_create.create_dpc`,
  `dpctool.fuel_validate.validate_dpc` / `write_validation`,
  `dpctool.fuel_objects.split_object`.

## Layout of an extracted archive

```
level_extracted/
    manifest.json        header fields, blocks and the pool description
    references.txt       written empty
    objects/
        <crc32>.<Class_Z>            one file per object
        <crc32>_<name>.<Class_Z>     objects may carry a readable name
```

Each object file starts with a 24-byte little-endian header (data size,
class-object size, decompressed size, compressed size, class CRC32, CRC32),
followed by the class object and the object data. Objects whose data lives
in the pool are written with that data filled in. On extraction an existing
`<crc32>_<name>.<Class_Z>` file is reused in place of the plain name. When
rebuilding, the CRC32 is taken from the part of the file name before the
first `_`, so two files for the same CRC32 are an error.

## What this package does not do

- No LZ compression or decompression: objects are extracted and rebuilt
  exactly as stored, and the `compress` flags in `manifest.json` are
  recorded but not acted on. The `-l/--lz` option has no effect.
- No unpacking of individual object classes (meshes, bitmaps, sounds and
  so on) into editable files: `-r/--recursive` has no effect, and
  `references.txt` is always empty.
- The sound sample rate and effective version string backend options are
  stored but not used by any operation.