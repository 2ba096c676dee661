# ==============================================================================
# Ham or Spam Training Script
# ==============================================================================
#
# Distributed training pipeline using Ray Train with PyTorch Lightning.
#
# This script orchestrates the full training workflow:
#   1. Load the SMS corpus and fit the hashing TF-IDF feature model
#   2. Configure distributed training with Ray TorchTrainer (DDP)
#   3. Log experiments, metrics, feature model and artifacts to MLflow
#   4. Report AUC on train/valid data and register the model
#   5. Score the demo messages as HAM or SPAM
#
# Architecture:
#   - Driver Process: Runs on head node, manages MLflow run and orchestration
#   - Worker Processes: Run on Ray workers, execute PyTorch Lightning training
#   - Rows are converted to Ray Datasets and sharded across workers
#
# CI/CD Integration:
#   Required environment variables for production (set by Argo Workflows):
#   - ARGO_WORKFLOW_UID: Workflow identifier for traceability
#   - DOCKER_IMAGE_TAG: Image tag for reproducibility
#   - DVC_DATA_VERSION: Optional data version tag (e.g., 'sms-v1.0.0')
#
# Usage:
#   # Local development
#   python -m src.training.train --max-epochs 10 --l1 0.001
#
#   # Production like (via Ray Job API)
#   ray job submit --working-dir . -- python -m src.training.train
#
# See Also:
#   - src/training/model.py: PyTorch Lightning model definition
#   - src/training/data.py: corpus loading utilities
#   - src/training/features.py: tokenizer, MurmurHash3, IDF
#
# ==============================================================================

import argparse
import os
from datetime import datetime
from pathlib import Path

import lightning.pytorch as pl
import mlflow
import pyarrow.fs
import ray
import torch
import urllib3
from ray.train import (
    CheckpointConfig,
    FailureConfig,
    RunConfig,
    ScalingConfig,
    get_checkpoint,
    get_context,
    get_dataset_shard,
)
from ray.train.lightning import (
    RayDDPStrategy,
    RayLightningEnvironment,
    RayTrainReportCallback,
    prepare_trainer,
)
from ray.train.torch import TorchTrainer

from src._utils.logging import get_logger, log_section
from src.training.config import TRAINING_CONFIG, WORKFLOW_TAGS
from src.training.data import (
    FEATURES_COLUMN,
    TARGET_COLUMN,
    load_data,
    stack_rows,
    to_dataset,
)
from src.training.evaluate import DEMO_MESSAGES, make_spam_detector, model_metrics
from src.training.features import FEATURE_MODEL_ARTIFACT
from src.training.model import HamSpamClassifier

urllib3.disable_warnings()

logger = get_logger(__name__)

BATCH_DTYPES = {FEATURES_COLUMN: torch.float32, TARGET_COLUMN: torch.int64}


# ============================================== #
# 🔹 SECTION: Training Functions
# ============================================== #
def train_fn_per_worker(train_loop_cnfg: dict):
    """Training code that runs on each worker."""
    # Disable SSL warnings in worker processes
    urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    worker_logger = get_logger(__name__)

    worker_logger.info(
        f"🎯 Worker {get_context().get_world_rank()} of {get_context().get_world_size()} started"
    )

    # Load data shard on each worker
    train_ds_shard = get_dataset_shard("train")
    val_ds_shard = get_dataset_shard("val")

    # Build data iterators
    train_iter = train_ds_shard.iter_torch_batches(
        batch_size=train_loop_cnfg.get("batch_size"),
        prefetch_batches=2,
        dtypes=BATCH_DTYPES,
    )
    val_iter = val_ds_shard.iter_torch_batches(
        batch_size=train_loop_cnfg.get("batch_size"),
        prefetch_batches=1,
        dtypes=BATCH_DTYPES,
    )

    model = HamSpamClassifier(
        num_features=train_loop_cnfg.get("num_features"),
        hidden=train_loop_cnfg.get("hidden"),
        l1=train_loop_cnfg.get("l1"),
        lr=train_loop_cnfg.get("lr"),
    )

    # Setup MLflow on rank 0 only to avoid duplicate logs
    rank0 = get_context().get_world_rank() == 0
    if rank0:
        mlflow.set_experiment(TRAINING_CONFIG.mlflow_experiment_name)
        mlflow.pytorch.autolog(
            log_models=False,  # The driver logs the best model
        )
        mlflow.start_run(run_id=train_loop_cnfg.get("mlflow_run_id"))
        worker_logger.info(
            f"Connected to MLflow run: {train_loop_cnfg.get('mlflow_run_id')}"
        )

    trainer = pl.Trainer(
        max_epochs=train_loop_cnfg.get("max_epochs"),
        devices="auto",
        accelerator="auto",
        strategy=RayDDPStrategy(),
        plugins=[RayLightningEnvironment()],
        callbacks=[RayTrainReportCallback()],
        enable_checkpointing=False,  # `RayTrainReportCallback` does that already
        log_every_n_steps=10,
    )
    trainer = prepare_trainer(trainer)

    checkpoint = get_checkpoint()
    if checkpoint:
        worker_logger.info(f"📂 Resuming from checkpoint: {checkpoint}")
        with checkpoint.as_directory() as ckpt_dir:
            ckpt_path = Path(ckpt_dir) / RayTrainReportCallback.CHECKPOINT_NAME
            trainer.fit(
                model,
                train_dataloaders=train_iter,
                val_dataloaders=val_iter,
                ckpt_path=ckpt_path,
            )
    else:
        worker_logger.info("🆕 Starting training from scratch")
        trainer.fit(model, train_dataloaders=train_iter, val_dataloaders=val_iter)

    if rank0:
        mlflow.end_run()
        worker_logger.success("✨ Training completed on rank 0")


def _storage_filesystem():
    """S3/MinIO filesystem for Ray checkpoints, None for local storage."""
    if not TRAINING_CONFIG.ray_storage_endpoint:
        return None
    return pyarrow.fs.S3FileSystem(
        endpoint_override=TRAINING_CONFIG.ray_storage_endpoint,
        scheme=TRAINING_CONFIG.ray_storage_scheme,
        access_key=os.getenv("AWS_ACCESS_KEY_ID"),
        secret_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
    )


def train_fn_driver(train_driver_cnfg: dict) -> ray.train.Result:
    """Driver code that runs on the head node."""
    log_section("Training Pipeline", "🚀")

    data_version = train_driver_cnfg.get("data_version")
    train_rows, val_rows, feature_model, data_metrics = load_data(
        path=train_driver_cnfg.get("data_path"),
        version=data_version,
        limit=train_driver_cnfg.get("limit"),
    )
    if not train_rows or not val_rows:
        raise ValueError(
            f"Need both train and validation rows, got {len(train_rows)}/{len(val_rows)}"
        )
    train_x, train_y = stack_rows(train_rows)
    val_x, val_y = stack_rows(val_rows)
    sample_input = val_x[:1]  # Shape: (1, num_features)
    logger.info(f"Input example shape: {sample_input.shape}")

    log_section("MLflow Configuration", "📊")
    mlflow.set_experiment(TRAINING_CONFIG.mlflow_experiment_name)
    logger.info(f"Experiment: {TRAINING_CONFIG.mlflow_experiment_name}")

    # ⚠️ IMPORTANT: Tags connect the registered model to the workflow and data version
    workflow_tags = {
        "argo_workflow_uid": WORKFLOW_TAGS.argo_workflow_uid,
        "docker_image_tag": WORKFLOW_TAGS.docker_image_tag,
        "dvc_data_version": data_version or "local",
    }

    train_loop_config = train_driver_cnfg.get("train_loop_config", {})

    with mlflow.start_run(
        run_name=train_loop_config.get("run_name"),
        tags=workflow_tags,
    ) as active_run:
        mlflow_run_id = active_run.info.run_id
        logger.success(f"✨ Started MLflow run: {mlflow_run_id}")

        mlflow.log_params(
            {
                "sms_data_path": data_metrics["dataset"]["path"],
                "dvc_data_version": data_version,
                "num_features": feature_model.num_features,
                "min_doc_freq": feature_model.min_doc_freq,
                "hash_seed": feature_model.seed,
                "train_fraction": TRAINING_CONFIG.train_fraction,
                "hidden": list(train_loop_config.get("hidden")),
                "l1": train_loop_config.get("l1"),
            }
        )
        mlflow.log_dict(data_metrics, "sms_data_metrics.json")
        mlflow.log_dict(feature_model.to_dict(), FEATURE_MODEL_ARTIFACT)
        logger.info(f"Logged feature model as {FEATURE_MODEL_ARTIFACT}")

        # Pass run_id and feature size to workers
        train_loop_config["mlflow_run_id"] = mlflow_run_id
        train_loop_config["num_features"] = feature_model.num_features

        log_section("Ray TorchTrainer Configuration", "⚙️")
        num_workers = train_driver_cnfg.get("num_workers")
        logger.info(f"Number of workers: {num_workers}")
        logger.info(f"Batch size: {train_loop_config.get('batch_size')}")
        logger.info(f"Learning rate: {train_loop_config.get('lr')}")
        logger.info(f"Hidden layers: {train_loop_config.get('hidden')}")
        logger.info(f"L1: {train_loop_config.get('l1')}")
        logger.info(f"Max epochs: {train_loop_config.get('max_epochs')}")

        use_gpu = torch.cuda.is_available() and torch.cuda.device_count() >= num_workers
        device_tag = "gpu" if use_gpu else "cpu"
        timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")

        run_name = (
            train_loop_config.get("run_name")
            or f"{TRAINING_CONFIG.mlflow_experiment_name}-w{num_workers}-{device_tag}-{timestamp}"
        )
        train_loop_config["run_name"] = run_name

        trainer = TorchTrainer(
            train_loop_per_worker=train_fn_per_worker,
            train_loop_config=train_loop_config,
            scaling_config=ScalingConfig(
                num_workers=num_workers,
                use_gpu=use_gpu,
            ),
            run_config=RunConfig(
                name=run_name,
                checkpoint_config=CheckpointConfig(
                    num_to_keep=1,
                    checkpoint_score_attribute="val_auc",
                    checkpoint_score_order="max",
                ),
                failure_config=FailureConfig(max_failures=3),
                storage_filesystem=_storage_filesystem(),
                storage_path=TRAINING_CONFIG.ray_storage_path,
            ),
            datasets={"train": to_dataset(train_rows), "val": to_dataset(val_rows)},
        )

        log_section("Training Execution", "🏃")
        logger.info("Starting distributed training...")
        result = trainer.fit()

        if not result.checkpoint:
            logger.warning("⚠️ No checkpoint available, model not logged")
            return result

        log_section("Model Evaluation", "📈")
        logger.info(f"Loading best checkpoint from: {result.checkpoint}")
        with result.checkpoint.as_directory() as checkpoint_dir:
            ckpt_path = Path(checkpoint_dir) / RayTrainReportCallback.CHECKPOINT_NAME
            model = HamSpamClassifier.load_from_checkpoint(ckpt_path)
        model = model.cpu().eval()

        train_metrics = model_metrics(model, train_x, train_y)
        valid_metrics = model_metrics(model, val_x, val_y)
        logger.info(f"AUC on train data = [yellow]{train_metrics['auc']:.4f}[/yellow]")
        logger.info(f"AUC on valid data = [yellow]{valid_metrics['auc']:.4f}[/yellow]")
        mlflow.log_metrics(
            {f"final_train_{k}": v for k, v in train_metrics.items()}
            | {f"final_valid_{k}": v for k, v in valid_metrics.items()}
        )

        log_section("Model Registration", "💾")
        logger.info(f"Logging model to MLflow run: {mlflow_run_id}")
        mlflow.pytorch.log_model(
            pytorch_model=model,
            name="model",
            registered_model_name=TRAINING_CONFIG.mlflow_registered_model_name,
            input_example=sample_input,
            code_paths=["src/training/model.py"],  # Needed for unpickling
        )
        logger.success(
            f"✨ Model registered as {TRAINING_CONFIG.mlflow_registered_model_name}"
        )

        log_section("Demo Messages", "📨")
        is_spam = make_spam_detector(feature_model, model)
        for msg in DEMO_MESSAGES:
            logger.info(f"{msg} is {'[red]SPAM[/red]' if is_spam(msg) else '[green]HAM[/green]'}")

    logger.success("🎉 Training pipeline complete!")

    return result


# ============================================== #
# 🔹 SECTION: Main Entry Point
# ============================================== #
def main():
    """Main entry point for training."""
    log_section("Ham or Spam Training", "📱")

    parser = argparse.ArgumentParser(description="Ham or Spam Training (Ray Data)")
    parser.add_argument("--run-name", type=str, help="MLflow run name")
    parser.add_argument("--data-path", type=str, help="SMS corpus path")
    parser.add_argument("--data-version", type=str, help="DVC data version tag")
    parser.add_argument("--limit", type=int, help="Use only the first N messages")
    parser.add_argument("--batch-size", type=int, default=64)
    parser.add_argument("--lr", type=float, default=1.0)
    parser.add_argument("--l1", type=float, default=1e-3)
    parser.add_argument("--hidden", type=int, nargs="+", default=[200, 200])
    parser.add_argument("--max-epochs", type=int, default=10)
    parser.add_argument("--num-workers", type=int)
    args = parser.parse_args()

    num_workers = args.num_workers or TRAINING_CONFIG.ray_num_workers
    # The workflow contract wins over the CLI argument
    data_version = WORKFLOW_TAGS.dvc_data_version or args.data_version

    log_section("Training Configuration", "⚙️")
    logger.info(f"Run name: {args.run_name or 'auto-generated'}")
    logger.info(f"Data path: {args.data_path or TRAINING_CONFIG.sms_data_path}")
    logger.info(f"Batch size: {args.batch_size}")
    logger.info(f"Learning rate: {args.lr}")
    logger.info(f"Max epochs: {args.max_epochs}")
    logger.info(f"Num workers: {num_workers}")

    log_section("CI/CD Data Contract from ENV", "📋")
    logger.info(f"Argo Workflow UID: {WORKFLOW_TAGS.argo_workflow_uid}")
    logger.info(f"Docker image tag: {WORKFLOW_TAGS.docker_image_tag}")
    logger.info(f"DVC data version: {data_version or 'local file'}")

    train_driver_cnfg = {
        "data_path": args.data_path,
        "data_version": data_version,
        "limit": args.limit,
        "num_workers": num_workers,
        "train_loop_config": {
            "batch_size": args.batch_size,
            "lr": args.lr,
            "l1": args.l1,
            "hidden": args.hidden,
            "max_epochs": args.max_epochs,
            "run_name": args.run_name,
        },
    }

    try:
        result = train_fn_driver(train_driver_cnfg)
    finally:
        ray.shutdown()

    log_section("Results", "📊")
    if result.error:
        logger.error(f"❌ Training failed with error: {result.error}")
    else:
        logger.success("✅ No errors during training")
        logger.info(f"Best checkpoint: {result.checkpoint}")
        logger.info(f"Metrics: {result.metrics}")


if __name__ == "__main__":
    main()
