# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
Command-line interface for DNMeta

Provides a CLI for reading and writing metadata of TIFF, JPEG, PDF and MP3
files, and for inspecting executable headers. The CLI does the file I/O;
everything else is delegated to the DNMeta engine.

Copyright 2025 DNAi inc.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

import chardet

from dnmeta.core import DNMeta
from dnmeta.exceptions import DNMetaError
from dnmeta.metadata_model import MetadataSet


def format_output(metadata: MetadataSet, format_type: str = "text") -> str:
    """
    Format metadata output based on format type.

    Args:
        metadata: Metadata to render
        format_type: Output format ('text', 'json', 'csv')

    Returns:
        Formatted output string
    """
    pairs = metadata.to_display_pairs()
    if format_type == "json":
        return json.dumps(dict(pairs), indent=2, ensure_ascii=False)
    elif format_type == "csv":
        lines = ["Tag,Value"]
        for tag, value in pairs:
            # Escape quotes in CSV
            value_str = value.replace('"', '""')
            lines.append(f'"{tag}","{value_str}"')
        return "\n".join(lines)
    else:  # text format (default)
        return "\n".join(f"{tag}: {value}" for tag, value in pairs)


def parse_tag_assignments(args: List[str]) -> Dict[str, str]:
    """
    Parse tag assignments from command-line arguments.

    Format: -TAGNAME=value or TAGNAME=value (an empty value removes the tag)

    Args:
        args: List of tag assignment strings

    Returns:
        Dictionary of tag names to values

    Raises:
        ValueError: If an argument is not an assignment
    """
    tags = {}
    for arg in args:
        # Remove leading dash if present
        tag_name = arg[1:] if arg.startswith('-') else arg
        if '=' not in tag_name:
            raise ValueError(f"Not a tag assignment: {arg}")
        key, value = tag_name.split('=', 1)
        if not key:
            raise ValueError(f"Missing tag name: {arg}")
        tags[key] = value
    return tags


def decode_text_file(data: bytes) -> str:
    """Decode a text file, detecting its encoding with chardet."""
    detected = chardet.detect(data)
    encoding = detected.get('encoding')
    confidence = detected.get('confidence') or 0.0
    if encoding and confidence > 0.5:
        try:
            return data.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            pass
    # Try common encodings if detection failed
    for encoding in ('utf-8-sig', 'latin-1'):
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue
    return data.decode('utf-8', errors='replace')


def read_assignment_file(path: Path) -> Dict[str, str]:
    """
    Read tag assignments from a file, one TAG=VALUE per line.

    Blank lines and lines starting with '#' are ignored.
    """
    text = decode_text_file(path.read_bytes())
    lines = [line.strip() for line in text.splitlines()]
    return parse_tag_assignments([line for line in lines if line and not line.startswith('#')])


def default_output_path(file_path: Path, overwrite_original: bool) -> Path:
    if overwrite_original:
        return file_path
    return file_path.with_name(f"{file_path.stem}_modified{file_path.suffix}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='dnmeta',
        description="DNMeta - Read and write TIFF, JPEG, PDF and MP3 metadata (100% Pure Python)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        allow_abbrev=False,
        epilog="""
Examples:
  # Read all metadata
  dnmeta image.tif

  # Read in JSON format
  dnmeta -j document.pdf

  # Write metadata (output goes to song_modified.mp3)
  dnmeta -TIT2="New Title" song.mp3

  # Remove a field and overwrite the original
  dnmeta -t Artist= -overwrite_original image.tif

  # Inspect an executable
  dnmeta --inspect setup.exe
        """
    )
    parser.add_argument('file', help='File to process')
    parser.add_argument('-j', '--json', action='store_true', help='Output metadata in JSON format')
    parser.add_argument('-csv', action='store_true', help='Output metadata in CSV format')
    parser.add_argument('-t', '--tag', action='append', dest='tags', default=[],
                        help='Tag assignment TAG=VALUE (repeatable, empty value removes)')
    parser.add_argument('-@', '--argfile', type=str, help='Read tag assignments from file')
    parser.add_argument('-o', '--output', type=str, help='Write the modified file here')
    parser.add_argument('-overwrite_original', action='store_true', help='Overwrite the original file')
    parser.add_argument('--inspect', action='store_true', help='Print executable header facts')
    parser.add_argument('-api', type=str, action='append', default=[],
                        help='Set API option (format: OPT=VAL)')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args, remaining = parser.parse_known_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
        stream=sys.stderr,
    )

    format_type = "json" if args.json else "csv" if args.csv else "text"
    try:
        engine = DNMeta()
        for api_opt in args.api:
            opt_name, _, opt_val = api_opt.partition('=')
            engine.set_option(opt_name.strip(), opt_val.strip())

        file_path = Path(args.file)
        data = file_path.read_bytes()

        if args.inspect:
            print(format_output(engine.inspect_executable(data, file_path.name), format_type))
            return 0

        assignments: Dict[str, str] = {}
        if args.argfile:
            assignments.update(read_assignment_file(Path(args.argfile)))
        assignments.update(parse_tag_assignments(args.tags))
        assignments.update(parse_tag_assignments(remaining))

        if not assignments:
            print(format_output(engine.read_metadata(data, file_path.name), format_type))
            return 0

        new_data = engine.write_metadata(data, file_path.name, assignments)
        output_path = Path(args.output) if args.output else default_output_path(
            file_path, args.overwrite_original
        )
        output_path.write_bytes(new_data)
        print(f"Metadata written successfully to {output_path}")
        return 0
    except DNMetaError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
