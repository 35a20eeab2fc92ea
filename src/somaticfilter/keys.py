"""Annotation keys read from upstream calls and the filter names written back.

The values follow the Mutect2 VCF conventions so that filtered output stays
compatible with downstream tooling.
"""

from __future__ import annotations

# Record-level (INFO) annotations
TUMOR_LOD = "TLOD"
NORMAL_LOD = "NLOD"
NORMAL_ARTIFACT_LOD = "NALOD"
POPULATION_AF = "POPAF"
MEDIAN_BASE_QUALITY = "MBQ"
MEDIAN_MAPPING_QUALITY = "MMQ"
MEDIAN_READ_POSITION = "MPOS"
MEDIAN_FRAGMENT_LENGTH = "MFRL"
EVENT_COUNT_IN_HAPLOTYPE = "ECNT"
UNIQUE_ALT_READ_COUNT = "UNIQ_ALT_READ_COUNT"
STRAND_ARTIFACT_POSTERIOR = "SA_POST_PROB"
STRAND_ARTIFACT_AF = "SA_MAP_AF"
IN_PON = "PON"
REPEATS_PER_ALLELE = "RPA"
REPEAT_UNIT = "RU"
N_COUNT = "NCount"
ORIGINAL_CONTIG_MISMATCH = "OCM"
DEPTH = "DP"

# Sample-level (FORMAT) annotations
ALLELE_FRACTION = "AF"
PHASING_GT = "PGT"
PHASING_ID = "PID"
STRAND_BIAS_BY_SAMPLE = "SB"
READ_ORIENTATION_POSTERIOR = "P_RO"
READ_ORIENTATION_PRIOR = "P_PRIOR_RO"

# Phred-scaled posteriors attached by soft filters
CONTAMINATION_QUAL = "CONTQ"
GERMLINE_QUAL = "GERMQ"
SOMATIC_EVIDENCE_QUAL = "SEQQ"

# Filter names
TUMOR_LOD_FILTER = "t_lod"
WEAK_EVIDENCE_FILTER = "weak_evidence"
BASE_QUALITY_FILTER = "base_qual"
MAPPING_QUALITY_FILTER = "map_qual"
DUPLICATED_EVIDENCE_FILTER = "duplicate_evidence"
STRAND_ARTIFACT_FILTER = "strand_artifact"
CONTAMINATION_FILTER = "contamination"
PANEL_OF_NORMALS_FILTER = "panel_of_normals"
ARTIFACT_IN_NORMAL_FILTER = "artifact_in_normal"
READ_ORIENTATION_FILTER = "read_orientation_artifact"
CLUSTERED_EVENTS_FILTER = "clustered_events"
MULTIALLELIC_FILTER = "multiallelic"
READ_POSITION_FILTER = "read_position"
FRAGMENT_LENGTH_FILTER = "fragment_length"
N_RATIO_FILTER = "n_ratio"
STRICT_STRAND_FILTER = "strict_strand"
STR_CONTRACTION_FILTER = "str_contraction"
BAD_HAPLOTYPE_FILTER = "bad_haplotype"
GERMLINE_RISK_FILTER = "germline_risk"
CHIMERIC_ORIGINAL_ALIGNMENT_FILTER = "numt_chimera"
LOW_AVG_ALT_QUALITY_FILTER = "low_avg_alt_quality"

# Header line marking a filtered call set
FILTERING_STATUS = "filtering_status"
NORMAL_SAMPLE_HEADER = "normal_sample"
TUMOR_SAMPLE_HEADER = "tumor_sample"
