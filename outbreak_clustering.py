#!/usr/bin/env python3
"""
Tornado Outbreak Clustering System
Main entry point for space-time clustering of SPC tornado reports into outbreaks
"""

import sys
import argparse
import time
import json
from pathlib import Path
from datetime import datetime, timedelta

import yaml

from tornado_outbreaks.utils import (
    load_config, validate_config, setup_logging, create_output_directory,
    PerformanceMonitor, format_duration, save_checkpoint, load_checkpoint
)
from tornado_outbreaks.data_preparation import EventPreparation
from tornado_outbreaks.clustering import SingleLinkageClusterer
from tornado_outbreaks.outbreak_characterization import OutbreakCharacterization
from tornado_outbreaks.county_intersection import load_counties, count_hull_intersections
from tornado_outbreaks.validation import ValidationFramework
from tornado_outbreaks.errors import ConfigError


def _geometry_to_wkt(df):
    """Replace shapely geometry columns by WKT strings for tabular export"""
    if 'hull' in df.columns:
        df = df.assign(hull=df['hull'].apply(lambda geom: geom.wkt))
    return df


def _export_table(df, directory, name, formats):
    for fmt in formats:
        if fmt == 'csv':
            _geometry_to_wkt(df).to_csv(directory / f'{name}.csv', index=False)
        elif fmt == 'parquet':
            _geometry_to_wkt(df).to_parquet(directory / f'{name}.parquet', index=False)
        else:
            raise ConfigError(f"Unknown export format: {fmt}")


def _export_geojson(gdf, path):
    # GeoJSON has no native datetime type
    gdf = gdf.copy()
    for col in gdf.columns:
        if str(gdf[col].dtype).startswith('datetime64'):
            gdf[col] = gdf[col].astype(str)
    gdf.to_file(path, driver='GeoJSON')


def main(config_path, resume_checkpoint=None, overrides=None):
    """
    Main pipeline for tornado outbreak clustering

    Args:
        config_path: Path to configuration YAML file
        resume_checkpoint: Path to checkpoint file to resume from
        overrides: dict of clustering parameters replacing the configured ones
    """

    # Load configuration
    config = load_config(config_path)
    if overrides:
        config['clustering'].update(overrides)
        validate_config(config)

    # Setup logging
    logger = setup_logging(config)
    logger.info("=" * 60)
    logger.info("TORNADO OUTBREAK CLUSTERING SYSTEM")
    logger.info("=" * 60)
    logger.info(f"Configuration: {config_path}")
    logger.info(f"Speed constant: {config['clustering']['speed_m_per_s']} m/s, "
                f"cut height: {config['clustering']['cut_height_s']} s")

    # Create output directory
    output_dir = create_output_directory(config)
    logger.info(f"Output directory: {output_dir}")
    # Effective configuration, command-line overrides included
    with open(output_dir / 'config.yaml', 'w') as f:
        yaml.safe_dump(config, f, sort_keys=False)

    monitor = PerformanceMonitor(config['logging']['report_interval_seconds'])
    formats = config['output']['export_formats']

    pipeline_results = {
        'start_time': datetime.now().isoformat(),
        'config_path': str(config_path),
        'output_dir': str(output_dir)
    }

    try:
        if resume_checkpoint:
            logger.info(f"Resuming from checkpoint: {resume_checkpoint}")
            checkpoint_data, checkpoint_meta = load_checkpoint(resume_checkpoint)
            start_stage = checkpoint_meta.get('stage', 0) + 1
        else:
            start_stage = 1
            checkpoint_data = {}

        # Stage 1: Event Preparation
        if start_stage <= 1:
            logger.info("\n" + "=" * 40)
            logger.info("STAGE 1: EVENT PREPARATION")
            logger.info("=" * 40)

            event_prep = EventPreparation(config)
            raw_df = event_prep.load_events()
            prepared = event_prep.prepare(raw_df)

            data_summary = event_prep.get_data_summary(prepared)
            pipeline_results['data_summary'] = data_summary
            with open(output_dir / 'data_summary.json', 'w') as f:
                json.dump(data_summary, f, indent=2, default=str)

            coords, times = event_prep.prepare_for_clustering(prepared.events)

            if config['checkpoint']['enable_checkpointing']:
                save_checkpoint(
                    {'prepared': prepared, 'coords': coords, 'times': times},
                    output_dir / 'checkpoints' / 'stage1_event_prep.pkl',
                    {'stage': 1, 'completed': True}
                )

            monitor.log_resources(force=True)
        else:
            prepared = checkpoint_data['prepared']
            coords = checkpoint_data['coords']
            times = checkpoint_data['times']

        # Stage 2: Space-time Clustering
        if start_stage <= 2:
            logger.info("\n" + "=" * 40)
            logger.info("STAGE 2: SPACE-TIME CLUSTERING")
            logger.info("=" * 40)

            clusterer = SingleLinkageClusterer(config)

            if config['clustering']['run_sensitivity']:
                logger.info("Running parameter sensitivity analysis...")
                sensitivity_df = clusterer.parameter_sensitivity(
                    coords, times,
                    config['clustering']['sensitivity_speeds'],
                    config['clustering']['sensitivity_heights'],
                    config['outbreaks']['min_group_size']
                )
                sensitivity_df.to_csv(output_dir / 'tables' / 'parameter_sensitivity.csv', index=False)

            cluster_start_time = time.time()
            clustering = clusterer.fit_predict(coords, times)
            cluster_time = time.time() - cluster_start_time
            logger.info(f"Clustering completed in {format_duration(cluster_time)}")
            pipeline_results['clustering_time_seconds'] = cluster_time

            if config['checkpoint']['enable_checkpointing']:
                save_checkpoint(
                    {'prepared': prepared, 'coords': coords, 'times': times, 'clustering': clustering},
                    output_dir / 'checkpoints' / 'stage2_clustering.pkl',
                    {'stage': 2, 'completed': True}
                )

            monitor.log_resources(force=True)
        else:
            clustering = checkpoint_data['clustering']

        # Stage 3: Outbreak Characterization
        if start_stage <= 3:
            logger.info("\n" + "=" * 40)
            logger.info("STAGE 3: OUTBREAK CHARACTERIZATION")
            logger.info("=" * 40)

            characterization = OutbreakCharacterization(config)
            tables = characterization.characterize(prepared.events, clustering.labels)

            tables_dir = output_dir / 'tables'
            _export_table(tables.groups, tables_dir, 'groups', formats)
            _export_table(tables.group_days, tables_dir, 'group_days', formats)
            _export_table(tables.events, tables_dir, 'outbreak_events', formats)
            logger.info(f"Saved {len(tables.groups)} outbreaks and {len(tables.group_days)} big days")

            hulls_gdf = characterization.to_geodataframe(tables.group_days)
            if config['output']['save_geometries'] and len(hulls_gdf):
                _export_geojson(hulls_gdf, output_dir / 'geometry' / 'group_days.geojson')

            county_path = config['data'].get('county_data_path')
            if county_path:
                id_column = config['counties']['id_column']
                counties_gdf = load_counties(county_path, hulls_gdf.crs, id_column)
                county_counts = count_hull_intersections(hulls_gdf, counties_gdf, id_column)

                county_counts.table.drop(columns=county_counts.table.geometry.name).to_csv(
                    tables_dir / 'county_counts.csv', index=False
                )
                if config['output']['save_geometries']:
                    _export_geojson(county_counts.table, output_dir / 'geometry' / 'county_counts.geojson')
            else:
                logger.info("No county data configured, skipping county intersection counts")

            if config['checkpoint']['enable_checkpointing']:
                save_checkpoint(
                    {'prepared': prepared, 'coords': coords, 'times': times,
                     'clustering': clustering, 'tables': tables},
                    output_dir / 'checkpoints' / 'stage3_outbreaks.pkl',
                    {'stage': 3, 'completed': True}
                )

            monitor.log_resources(force=True)
        else:
            tables = checkpoint_data['tables']

        # Stage 4: Validation and Quality Assessment
        logger.info("\n" + "=" * 40)
        logger.info("STAGE 4: VALIDATION & QUALITY ASSESSMENT")
        logger.info("=" * 40)

        validator = ValidationFramework(config, output_dir)
        pipeline_results['clustering_validation'] = validator.validate_clustering(coords, times, clustering)
        pipeline_results['outbreak_validation'] = validator.validate_outbreaks(tables)
        validator.generate_validation_report(pipeline_results)

        monitor.log_resources(force=True)

        # Final summary
        pipeline_results['end_time'] = datetime.now().isoformat()
        pipeline_results['total_duration_seconds'] = (
            datetime.fromisoformat(pipeline_results['end_time']) -
            datetime.fromisoformat(pipeline_results['start_time'])
        ).total_seconds()
        pipeline_results['status'] = 'COMPLETED'

        logger.info("\n" + "=" * 60)
        logger.info("PIPELINE COMPLETED SUCCESSFULLY")
        logger.info("=" * 60)
        logger.info(f"Total duration: {format_duration(pipeline_results['total_duration_seconds'])}")
        logger.info(f"Outbreaks: {len(tables.groups)}, big days: {len(tables.group_days)}")
        logger.info(f"Output directory: {output_dir}")

        with open(output_dir / 'pipeline_results.json', 'w') as f:
            json.dump(pipeline_results, f, indent=2, default=str)

        if config['checkpoint']['max_checkpoint_age_days'] > 0:
            _cleanup_old_checkpoints(output_dir.parent, config['checkpoint']['max_checkpoint_age_days'])

        return pipeline_results

    except Exception as e:
        logger.error(f"Pipeline failed: {str(e)}", exc_info=True)
        pipeline_results['error'] = str(e)
        pipeline_results['status'] = 'FAILED'

        with open(output_dir / 'error_report.json', 'w') as f:
            json.dump(pipeline_results, f, indent=2, default=str)

        raise


def _cleanup_old_checkpoints(output_base_dir, max_age_days):
    """Remove checkpoints of earlier runs older than max_age_days"""
    if not output_base_dir.exists():
        return

    cutoff_time = datetime.now() - timedelta(days=max_age_days)

    for checkpoint_file in output_base_dir.glob('*/checkpoints/*.pkl'):
        if datetime.fromtimestamp(checkpoint_file.stat().st_mtime) < cutoff_time:
            checkpoint_file.unlink()


def cli(argv=None):
    parser = argparse.ArgumentParser(
        description="Tornado Outbreak Clustering System - space-time clustering of SPC tornado reports"
    )

    parser.add_argument(
        'config',
        type=str,
        help='Path to configuration YAML file'
    )

    parser.add_argument(
        '--resume',
        type=str,
        default=None,
        help='Path to checkpoint file to resume from'
    )

    parser.add_argument(
        '--speed',
        type=float,
        default=None,
        help='Override the space-time speed constant (m/s)'
    )

    parser.add_argument(
        '--cut-height',
        type=float,
        default=None,
        help='Override the dendrogram cut height (s)'
    )

    parser.add_argument(
        '--sensitivity',
        action='store_true',
        help='Run the speed/cut-height sensitivity grid before clustering'
    )

    args = parser.parse_args(argv)

    config_path = Path(args.config)
    if not config_path.exists():
        print(f"Error: Configuration file not found: {config_path}")
        sys.exit(1)

    overrides = {}
    if args.speed is not None:
        overrides['speed_m_per_s'] = args.speed
    if args.cut_height is not None:
        overrides['cut_height_s'] = args.cut_height
    if args.sensitivity:
        overrides['run_sensitivity'] = True

    main(config_path, args.resume, overrides)


if __name__ == "__main__":
    cli()
